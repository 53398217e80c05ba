from django.core.management.base import BaseCommand
from django.db import transaction

from aid_system.models import (
    Allocation, Beneficiary, Disburser, FraudAlert, GoodsType, Region,
    RegionalGoods, User,
)


REGIONS = ['North', 'South', 'East', 'West']

GOODS_TYPES = [
    ('Shelter Kit', 'Tarpaulin, rope and fixings for one household'),
    ('Water Container', '20 litre collapsible jerrycan'),
    ('Hygiene Kit', 'Soap, toothbrushes, sanitary items'),
    ('Medical Kit', 'Basic first aid supplies'),
    ('Food Package', 'Dry rations for one household for one week'),
    ('Emergency Blanket', 'Thermal blanket'),
]


class Command(BaseCommand):
    help = 'Seed the database with regions, goods, stock, an admin and one disburser per region'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--stock',
            type=int,
            default=100,
            help='Initial quantity for every regional stock line',
        )
        parser.add_argument(
            '--password',
            default='ChangeMe-2024!',
            help='Password given to the seeded admin and disbursers',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Starting data seeding...')

        with transaction.atomic():
            regions = self.create_regions()
            goods_types = self.create_goods_types()
            self.create_stock(regions, goods_types, options['stock'])
            self.create_admin(options['password'])
            self.create_disbursers(regions, options['password'])

        self.stdout.write(
            self.style.SUCCESS('Successfully seeded the database!')
        )

    def clear_data(self):
        """Clear all existing data, children first"""
        models_to_clear = [
            Allocation, FraudAlert, Beneficiary, RegionalGoods, Disburser,
            GoodsType, Region,
        ]
        for model in models_to_clear:
            model.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()

    def create_regions(self):
        self.stdout.write('Creating regions...')
        regions = []
        for name in REGIONS:
            region, created = Region.objects.get_or_create(name=name)
            regions.append(region)
        return regions

    def create_goods_types(self):
        self.stdout.write('Creating goods types...')
        goods_types = []
        for name, description in GOODS_TYPES:
            goods_type, created = GoodsType.objects.get_or_create(
                name=name, defaults={'description': description}
            )
            goods_types.append(goods_type)
        return goods_types

    def create_stock(self, regions, goods_types, quantity):
        self.stdout.write('Creating regional stock...')
        for region in regions:
            for goods_type in goods_types:
                RegionalGoods.objects.get_or_create(
                    region=region,
                    goods_type=goods_type,
                    defaults={'quantity': quantity},
                )

    def create_admin(self, password):
        if User.objects.filter(username='admin').exists():
            self.stdout.write(self.style.WARNING('Skipped admin (already exists)'))
            return
        User.objects.create_user(
            username='admin',
            password=password,
            first_name='System',
            last_name='Administrator',
            user_type='admin',
            is_staff=True,
            is_superuser=True,
        )
        self.stdout.write(self.style.SUCCESS('Added admin'))

    def create_disbursers(self, regions, password):
        self.stdout.write('Creating disbursers...')
        for index, region in enumerate(regions, start=1):
            phone_number = f"+2547000000{index:02d}"
            if Disburser.objects.filter(phone_number=phone_number).exists():
                self.stdout.write(self.style.WARNING(f"Skipped {phone_number} (already exists)"))
                continue
            user = User.objects.create_user(
                username=f"disburser-{phone_number}",
                password=password,
                first_name=f"{region.name} Disburser",
                user_type='disburser',
            )
            Disburser.objects.create(
                user=user,
                name=f"{region.name} Disburser",
                phone_number=phone_number,
                region=region,
            )
            self.stdout.write(self.style.SUCCESS(f"Added disburser {phone_number} for {region.name}"))
