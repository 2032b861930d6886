from datetime import date, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from apps.accounts.models import DEFAULT_STAFF_PAGES, Page, RolePagePermission, User, UserRole
from apps.catalog.models import Category, Variety
from apps.lots.services import create_lot
from apps.seed_inward.services import receive_batch

SAMPLE_CATALOG = {
    ("Vegetables", Decimal("10.00")): ["Tomato (Hybrid)", "Green Chilli"],
    ("Fruits", Decimal("25.00")): ["Alphonso Mango"],
}


class Command(BaseCommand):
    help = "Create the admin user, default page permissions and sample nursery data"

    def add_arguments(self, parser):
        parser.add_argument("--admin-username", default="admin")
        parser.add_argument("--admin-password", default="admin123")
        parser.add_argument("--skip-samples", action="store_true", help="Only create the admin user and permissions")

    @transaction.atomic
    def handle(self, *args, **options):
        admin = self._ensure_admin(options["admin_username"], options["admin_password"])
        self._ensure_page_permissions()
        if options["skip_samples"]:
            return
        if Category.objects.exists():
            self.stdout.write("Categories already exist, skipping sample data")
            return
        self._create_samples(admin)

    def _ensure_admin(self, username, password):
        admin = User.objects.filter(username=username).first()
        if admin is not None:
            self.stdout.write(f"{username}: exists")
            return admin
        admin = User.objects.create_user(
            username=username,
            password=password,
            role=UserRole.ADMIN,
            first_name="System",
            last_name="Administrator",
            is_staff=True,
        )
        self.stdout.write(self.style.SUCCESS(f"{username}: created"))
        return admin

    def _ensure_page_permissions(self):
        created = 0
        for page in Page.values:
            _, was_created = RolePagePermission.objects.get_or_create(
                role=UserRole.STAFF,
                page=page,
                defaults={"allowed": page in DEFAULT_STAFF_PAGES},
            )
            created += int(was_created)
        self.stdout.write(self.style.SUCCESS(f"staff page permissions: {created} created"))

    def _create_samples(self, admin):
        varieties = {}
        for (category_name, price), variety_names in SAMPLE_CATALOG.items():
            category = Category.objects.create(name=category_name, price_per_unit=price)
            for variety_name in variety_names:
                varieties[variety_name] = Variety.objects.create(category=category, name=variety_name)

        tomato = varieties["Tomato (Hybrid)"]
        today = timezone.localdate()
        batch = receive_batch(
            actor=admin,
            category=tomato.category,
            variety=tomato,
            lot_number="LOT-001",
            expiry_date=date(today.year + 1, 12, 31),
            number_of_packets=100,
            total_quantity=1000,
            package_type="Packet",
            received_from="Seed Corp",
        )
        create_lot(
            actor=admin,
            lot_number="LOT-001",
            category=tomato.category,
            variety=tomato,
            seed_inward=batch,
            sowing_date=today,
            seeds_sown=500,
            packets_sown=50,
            damaged=10,
            expected_ready_date=today + timedelta(days=45),
            remarks="Initial test lot",
        )
        self.stdout.write(self.style.SUCCESS("sample categories, varieties, seed inward and lot created"))
