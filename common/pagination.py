from rest_framework.pagination import PageNumberPagination


class AuditLogPagination(PageNumberPagination):
    """Audit history grows without bound, so it is always served in pages.

    ``?page_size=`` is honoured up to ``max_page_size``.
    """

    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 200
