"""
Management command to change an account's role.

Registration makes the first account ADMIN and everyone else USER; this is
the only way to move an account between roles afterwards.
"""
from django.core.management.base import BaseCommand, CommandError
from sweetshop.core.models import Role, User
from sweetshop.core.utils import create_audit_log


class Command(BaseCommand):
    help = "Sets the role (USER or ADMIN) of an existing account"

    def add_arguments(self, parser):
        parser.add_argument('email', help='Email of the account to change')
        parser.add_argument('role', choices=[choice.value for choice in Role], help='New role')

    def handle(self, *args, **options):
        user = User.objects.filter(email__iexact=options['email']).first()
        if user is None:
            raise CommandError(f"No account with email {options['email']}")

        new_role = options['role']
        if user.role == new_role:
            self.stdout.write(self.style.WARNING(f"{user.email} already has role {new_role}"))
            return

        if user.is_admin and not User.objects.filter(role=Role.ADMIN).exclude(pk=user.pk).exists():
            raise CommandError("Refusing to demote the last ADMIN account")

        old_role = user.role
        user.role = new_role
        user.save(update_fields=['role', 'updated_at'])
        create_audit_log(
            action='role_change',
            model_name='User',
            object_id=user.id,
            object_name=user.email,
            changes={'from': old_role, 'to': new_role},
        )
        self.stdout.write(self.style.SUCCESS(f"{user.email}: {old_role} -> {new_role}"))
