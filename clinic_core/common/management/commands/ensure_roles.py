# clinic_core/common/management/commands/ensure_roles.py
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from clinic_core.common.permissions import ALL_ROLES, CAPABILITY_MATRIX


class Command(BaseCommand):
    help = "Create the clinic staff role groups that are missing. Safe to re-run."

    def add_arguments(self, parser):
        parser.add_argument("--verbose-capabilities", action="store_true", help="Print what each role may do.")

    def handle(self, *args, **options):
        existing = set(Group.objects.filter(name__in=ALL_ROLES).values_list("name", flat=True))
        missing = [name for name in ALL_ROLES if name not in existing]
        Group.objects.bulk_create([Group(name=name) for name in missing])

        for name in ALL_ROLES:
            marker = "+" if name in missing else "="
            line = f"{marker} {name}"
            if options["verbose_capabilities"]:
                line += ": " + ", ".join(sorted(CAPABILITY_MATRIX.get(name, ())))
            self.stdout.write(line)

        self.stdout.write(self.style.SUCCESS(f"{len(missing)} role group(s) created."))
