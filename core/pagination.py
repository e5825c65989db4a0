"""
Pagination classes that render inside the success envelope.
"""

from rest_framework.pagination import LimitOffsetPagination, PageNumberPagination

from .responses import success_response


class EnvelopePagination(PageNumberPagination):
    """
    ``?page=<n>&limit=<size>`` pagination.

    The page size defaults to 20 and is capped at 100.
    """

    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100

    def __init__(self, page_size=None):
        if page_size is not None:
            self.page_size = page_size

    def get_pagination_meta(self):
        paginator = self.page.paginator
        return {
            'page': self.page.number,
            'limit': paginator.per_page,
            'total': paginator.count,
            'total_pages': paginator.num_pages,
            'has_next': self.page.has_next(),
            'has_previous': self.page.has_previous(),
        }

    def get_paginated_response(self, data):
        return success_response(data, pagination=self.get_pagination_meta())

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'data': schema,
                'pagination': {'type': 'object'},
            },
        }


class EnvelopeLimitOffsetPagination(LimitOffsetPagination):
    """``?limit=<n>&offset=<m>`` pagination for the admin queues."""

    default_limit = 50
    max_limit = 100

    def get_pagination_meta(self):
        return {
            'total': self.count,
            'limit': self.limit,
            'offset': self.offset,
            'has_more': self.offset + self.limit < self.count,
        }

    def get_paginated_response(self, data):
        return success_response(data, pagination=self.get_pagination_meta())
