from carelink_shared.constants.roles import Role

__all__ = ["Role"]
