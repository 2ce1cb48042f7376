"""
User directory.

Maps the identity provider's stable user id (``User.external_id``) to a
local profile record carrying display fields and presence. Every other
app refers to users by that identity string only.
"""
