from aid_system.allocation import DataUnavailable, StockLine, WriteFailed
from aid_system.models import Beneficiary, Disburser, GoodsType, Region, RegionalGoods, User

PASSWORD = 'Str0ng-pass-123'


class AidDataMixin:
    """Regions, stock, an admin and one disburser per region"""

    @classmethod
    def setUpTestData(cls):
        cls.north = Region.objects.create(name='North')
        cls.south = Region.objects.create(name='South')

        cls.water = GoodsType.objects.create(name='Water Container')
        cls.hygiene = GoodsType.objects.create(name='Hygiene Kit')
        cls.blanket = GoodsType.objects.create(name='Emergency Blanket')

        cls.water_north = RegionalGoods.objects.create(goods_type=cls.water, region=cls.north, quantity=3)
        cls.hygiene_north = RegionalGoods.objects.create(goods_type=cls.hygiene, region=cls.north, quantity=10)
        cls.blanket_north = RegionalGoods.objects.create(goods_type=cls.blanket, region=cls.north, quantity=0)
        cls.water_south = RegionalGoods.objects.create(goods_type=cls.water, region=cls.south, quantity=5)

        cls.admin_user = User.objects.create_user(
            username='admin', password=PASSWORD, user_type='admin', is_staff=True,
        )
        cls.disburser = cls.make_disburser('Amina Odhiambo', '+254700000001', cls.north)
        cls.beneficiary = Beneficiary.objects.create(
            name='Juma Wanjiru',
            estimated_age=34,
            height='172.5',
            region=cls.north,
            registered_by=cls.disburser,
            unique_identifiers={'national_id': '12345678'},
        )

    @classmethod
    def make_disburser(cls, name, phone_number, region):
        user = User.objects.create_user(
            username=f'disburser-{phone_number}', password=PASSWORD, user_type='disburser',
        )
        return Disburser.objects.create(user=user, name=name, phone_number=phone_number, region=region)


class StubStore:
    """In-memory store with switchable failures"""

    def __init__(self, lines, quantities, names, recent=False):
        self.lines = {row_id: StockLine(row_id, goods_type_id, region_id)
                      for row_id, (goods_type_id, region_id) in lines.items()}
        self.quantities = dict(quantities)
        self.names = dict(names)
        self.recent = recent
        self.alerts = []
        self.allocations = []
        self.name_loads = 0

        self.fail_history = False
        self.fail_lines = False
        self.fail_alert = False
        self.fail_allocation = False
        self.fail_reads = set()
        self.fail_writes = set()

    def find_recent_allocation(self, beneficiary_id, now=None):
        if self.fail_history:
            raise DataUnavailable('history unavailable')
        return self.recent

    def stock_lines(self, row_ids):
        if self.fail_lines:
            raise DataUnavailable('stock unavailable')
        return {row_id: self.lines[row_id] for row_id in row_ids if row_id in self.lines}

    def goods_type_names(self):
        self.name_loads += 1
        return dict(self.names)

    def insert_fraud_alert(self, beneficiary_id, disburser_id, location, details, goods_ids=()):
        if self.fail_alert:
            raise WriteFailed('alert insert failed')
        self.alerts.append({
            'beneficiary_id': beneficiary_id,
            'disburser_id': disburser_id,
            'location': location,
            'details': details,
            'goods_ids': list(goods_ids),
        })
        return len(self.alerts)

    def insert_allocation(self, beneficiary_id, disburser_id, goods, location):
        if self.fail_allocation:
            raise WriteFailed('allocation insert failed')
        self.allocations.append({
            'beneficiary_id': beneficiary_id,
            'disburser_id': disburser_id,
            'goods': list(goods),
            'location': location,
        })
        return len(self.allocations)

    def get_regional_goods_quantity(self, row_id):
        if row_id in self.fail_reads:
            raise DataUnavailable(f'row {row_id} unreadable')
        return self.quantities[row_id]

    def update_regional_goods_quantity(self, row_id, new_quantity):
        if row_id in self.fail_writes:
            raise WriteFailed(f'row {row_id} not writable')
        self.quantities[row_id] = new_quantity
