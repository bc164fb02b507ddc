from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

User = get_user_model()


class SeedRolesTests(TestCase):
    def test_creates_role_groups_once(self):
        call_command("seed_roles", stdout=StringIO())
        call_command("seed_roles", stdout=StringIO())
        self.assertEqual(sorted(Group.objects.values_list("name", flat=True)), ["ADMIN", "OWNER", "STAFF"])

    def test_promotes_owner(self):
        user = User.objects.create_user(username="lena", password="x")
        self.assertEqual(user.role, "STAFF")

        call_command("seed_roles", owner="lena", stdout=StringIO())

        user.refresh_from_db()
        self.assertEqual(user.role, "OWNER")
        self.assertTrue(user.groups.filter(name="OWNER").exists())

    def test_unknown_owner_fails(self):
        with self.assertRaises(CommandError):
            call_command("seed_roles", owner="ghost", stdout=StringIO())

    def test_display_name_prefers_full_name(self):
        self.assertEqual(User(username="lena").display_name, "lena")
        self.assertEqual(User(username="lena", first_name="Lena", last_name="Ortiz").display_name, "Lena Ortiz")
