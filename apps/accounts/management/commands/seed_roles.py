from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand, CommandError

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create the role groups and optionally promote a user to owner"

    def add_arguments(self, parser):
        parser.add_argument("--owner", help="Username to promote to the OWNER role")

    def handle(self, *args, **options):
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            status = "created" if created else "exists"
            self.stdout.write(self.style.SUCCESS(f"{group.name}: {status}"))

        username = options.get("owner")
        if not username:
            return

        User = get_user_model()
        try:
            user = User.objects.get(username=username)
        except User.DoesNotExist as exc:
            raise CommandError(f"User {username!r} does not exist.") from exc

        user.role = UserRole.OWNER
        user.save(update_fields=["role"])
        user.groups.add(Group.objects.get(name=UserRole.OWNER))
        self.stdout.write(self.style.SUCCESS(f"{user.username} is now {UserRole.OWNER}"))
