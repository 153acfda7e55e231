from enum import Enum


class Role(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"
    STAFF = "staff"
    HC_PROVIDER = "hcprovider"
    HC_MANAGER = "hcmanager"
