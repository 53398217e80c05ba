import base64
import logging
from datetime import timedelta
from io import BytesIO

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns
from django.utils import timezone

from .allocation import GoodsNameCache, normalize_goods
from .models import Allocation, Beneficiary, FraudAlert

logger = logging.getLogger(__name__)

TIME_RANGES = {
    'day': timedelta(days=1),
    'week': timedelta(days=7),
    'month': timedelta(days=30),
}


def get_allocation_frame(name_cache=None):
    """One row per allocated goods entry"""
    name_cache = name_cache or GoodsNameCache()
    rows = []
    allocations = Allocation.objects.values(
        'id', 'allocated_at', 'goods', 'beneficiary__region__name'
    )
    for allocation in allocations:
        entries = normalize_goods(allocation['goods']) or [None]
        for entry in entries:
            rows.append({
                'allocation_id': allocation['id'],
                'allocated_at': allocation['allocated_at'],
                'region': allocation['beneficiary__region__name'] or 'unknown',
                'goods': (entry.name or name_cache.name_for(entry.goods_id)) if entry else 'unknown',
            })
    return pd.DataFrame(rows, columns=['allocation_id', 'allocated_at', 'region', 'goods'])


def _counts(series):
    return {str(key): int(value) for key, value in series.value_counts().sort_index().items()}


def get_dashboard_statistics(time_range='week', name_cache=None, now=None):
    """Totals and breakdowns for the admin dashboard"""
    now = now or timezone.now()
    window = TIME_RANGES.get(time_range, TIME_RANGES['week'])

    beneficiaries = pd.DataFrame(
        list(Beneficiary.objects.values('id', 'region__name')),
        columns=['id', 'region__name'],
    )
    alerts = pd.DataFrame(
        list(FraudAlert.objects.values('id', 'attempted_at')),
        columns=['id', 'attempted_at'],
    )
    frame = get_allocation_frame(name_cache)
    allocations = frame.drop_duplicates('allocation_id')

    by_time = {}
    if not allocations.empty:
        allocated_at = pd.to_datetime(allocations['allocated_at'], utc=True)
        recent = allocated_at[allocated_at >= pd.Timestamp(now - window)]
        if not recent.empty:
            days = recent.dt.strftime('%Y-%m-%d')
            by_time = _counts(days)

    recent_alerts = 0
    if not alerts.empty:
        attempted_at = pd.to_datetime(alerts['attempted_at'], utc=True)
        recent_alerts = int((attempted_at >= pd.Timestamp(now - timedelta(days=7))).sum())

    return {
        'beneficiaries': {
            'total': int(len(beneficiaries)),
            'by_region': _counts(beneficiaries['region__name'].fillna('unknown')),
        },
        'allocations': {
            'total': int(len(allocations)),
            'by_goods': _counts(frame['goods']) if not frame.empty else {},
            'by_region': _counts(allocations['region']) if not allocations.empty else {},
            'by_time': by_time,
        },
        'alerts': {
            'total': int(len(alerts)),
            'recent': recent_alerts,
        },
    }


def render_allocation_chart(by_time):
    """Bar chart of allocations per day as a base64 PNG, or None without data"""
    if not by_time:
        return None

    sns.set_theme(style='whitegrid')
    fig, ax = plt.subplots(figsize=(8, 3))
    try:
        sns.barplot(x=list(by_time.keys()), y=list(by_time.values()), color='#2563eb', ax=ax)
        ax.set_xlabel('')
        ax.set_ylabel('Allocations')
        ax.tick_params(axis='x', rotation=45)
        fig.tight_layout()

        buffer = BytesIO()
        fig.savefig(buffer, format='png')
    finally:
        plt.close(fig)
    return base64.b64encode(buffer.getvalue()).decode('ascii')
