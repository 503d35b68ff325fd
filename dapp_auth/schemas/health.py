from dapp_auth.schemas.my_base_model import CustomBaseModel


class HealthCheck(CustomBaseModel):
    status: str = "ok"
    timestamp: str = ""


class DbInfo(CustomBaseModel):
    postgres: bool = False
    mongodb: bool = False
    redis: bool = False
