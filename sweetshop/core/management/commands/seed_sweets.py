"""
Management command to seed the shop with an owner account and demo sweets
"""
from decimal import Decimal

from django.core.management.base import BaseCommand
from sweetshop.core.models import Role, User
from sweetshop.inventory.models import Sweet


DEMO_SWEETS = [
    {'name': 'Rainbow Lollipop', 'category': 'Hard Candy', 'price': Decimal('2.50'), 'quantity': 50},
    {'name': 'Chocolate Frog', 'category': 'Chocolate', 'price': Decimal('4.00'), 'quantity': 20},
    {'name': 'Sour Worms', 'category': 'Gummy', 'price': Decimal('1.50'), 'quantity': 100},
]


class Command(BaseCommand):
    help = "Creates the shop owner account and adds demo sweets"

    def add_arguments(self, parser):
        parser.add_argument('--email', default='admin@sweetshop.com', help='Owner account email')
        parser.add_argument('--password', default='admin123', help='Owner account password')
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Delete all existing sweets before adding the demo ones',
        )

    def handle(self, *args, **options):
        email = options['email']

        owner = User.objects.filter(email__iexact=email).first()
        if owner is None:
            User.objects.create_user(email=email, password=options['password'], name='Owner', role=Role.ADMIN)
            self.stdout.write(self.style.SUCCESS(f"  ✓ Created owner account: {email}"))
        else:
            self.stdout.write(self.style.WARNING(f"  ⊘ Owner account already exists: {email}"))

        if options['clear']:
            self.stdout.write(self.style.WARNING("Clearing all existing sweets..."))
            Sweet.objects.all().delete()

        created_count = 0
        skipped_count = 0
        for data in DEMO_SWEETS:
            _, created = Sweet.objects.get_or_create(
                name=data['name'],
                defaults={key: value for key, value in data.items() if key != 'name'},
            )
            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f"  ✓ Created: {data['name']}"))
            else:
                skipped_count += 1
                self.stdout.write(self.style.WARNING(f"  ⊘ Skipped (already exists): {data['name']}"))

        self.stdout.write(f"Sweets Created: {created_count}")
        self.stdout.write(f"Sweets Skipped (already exist): {skipped_count}")
        self.stdout.write(self.style.SUCCESS("Seeding complete."))
