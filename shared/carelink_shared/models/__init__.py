from carelink_shared.models.pagination import PaginationParams, PaginatedResponse

__all__ = ["PaginationParams", "PaginatedResponse"]
