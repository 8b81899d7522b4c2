from .items import ItemFilters, ItemRepository, ItemScope

__all__ = ['ItemFilters', 'ItemRepository', 'ItemScope']
