from django import template

from aid_system.allocation import UNKNOWN_GOODS_NAME

register = template.Library()


@register.filter
def percent_of(value, total):
    """Share of total as a percentage, for dashboard bars"""
    try:
        return round(float(value) / float(total) * 100, 1) if float(total) != 0 else 0
    except (ValueError, TypeError):
        return 0


@register.filter
def goods_names(entries, name_cache=None):
    """
    Render goods entries as a comma separated list. Entries stored without a
    name are resolved through the name cache when one is given.
    Usage: {{ allocation.goods_entries|goods_names:name_cache }}
    """
    try:
        if name_cache:
            names = name_cache.names_for(entries)
        else:
            names = [entry.name or UNKNOWN_GOODS_NAME for entry in entries]
    except (AttributeError, TypeError):
        return ''
    return ', '.join(names) if names else 'No items'
