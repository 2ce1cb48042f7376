"""
Factory Boy factories for the user directory.

Usage:
    from users.tests.factories import UserFactory

    # User with a generated identity and email
    user = UserFactory()

    # User with a specific identity
    user = UserFactory(external_id="user_ada", first_name="Ada")

    # Offline user last seen an hour ago
    user = UserFactory(offline=True)
"""

from datetime import timedelta

import factory
from django.utils import timezone

from users.models import User, UserStatus


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Users are created through UserManager.create_user(), so they get an
    unusable password unless one is passed.

    Examples:
        user = UserFactory()
        staff = UserFactory(is_staff=True)
        offline = UserFactory(offline=True)
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    class Params:
        offline = factory.Trait(
            is_online=False,
            status=UserStatus.OFFLINE,
            last_seen=factory.LazyFunction(lambda: timezone.now() - timedelta(hours=1)),
        )

    external_id = factory.Sequence(lambda n: f"user_{n:04d}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")
    username = factory.Sequence(lambda n: f"user{n}")
    is_online = True
    status = UserStatus.ONLINE
    last_seen = factory.LazyFunction(timezone.now)
    is_active = True

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        return model_class.objects.create_user(
            external_id=kwargs.pop("external_id"),
            email=kwargs.pop("email"),
            password=kwargs.pop("password", None),
            **kwargs,
        )
