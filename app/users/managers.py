"""
Custom user manager keyed by the identity provider's user id.

Related files:
    - models.py: User model that uses this manager
    - services.py: UserService, which creates users from provider events
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Manager for User rows synced from the identity provider.

    Usage:
        user = User.objects.create_user(
            external_id="user_2abc",
            email="user@example.com",
        )

        admin = User.objects.create_superuser(
            external_id="admin",
            email="admin@example.com",
            password="adminpassword",
        )
    """

    def create_user(self, external_id, email, password=None, **extra_fields):
        """
        Create and save a user.

        Users coming from the identity provider have no local password, so
        ``password`` is optional and an unusable one is set when omitted.

        Raises:
            ValueError: If external_id or email is not provided
        """
        if not external_id:
            raise ValueError("The external_id field must be set")
        if not email:
            raise ValueError("The Email field must be set")

        email = self.normalize_email(email)
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)

        user = self.model(external_id=external_id, email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()

        user.save(using=self._db)
        return user

    def create_superuser(self, external_id, email, password=None, **extra_fields):
        """Create a staff superuser for the Django admin."""
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(external_id, email, password, **extra_fields)
