from pydantic import BaseModel
import os

class Settings(BaseModel):
    host: str = os.getenv("GATEWAY_HOST", "0.0.0.0")
    port: int = int(os.getenv("GATEWAY_PORT", "8081"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    command_dialect: str = os.getenv("COMMAND_DIALECT", "push")

    # handshake options sent on GET /iclock/cdata?options=all
    error_delay: int = int(os.getenv("ERROR_DELAY", "30"))
    poll_delay: int = int(os.getenv("POLL_DELAY", "10"))
    trans_interval: int = int(os.getenv("TRANS_INTERVAL", "1"))
    trans_flag: str = os.getenv("TRANS_FLAG", "TransData AttLog OpLog AttPhoto EnrollUser ChgUser")
    device_timezone: int = int(os.getenv("DEVICE_TIMEZONE", "8"))
    realtime: int = int(os.getenv("REALTIME", "1"))
    encrypt: int = int(os.getenv("ENCRYPT", "0"))
    server_ver: str = os.getenv("SERVER_VER", "3.4.1")
    push_prot_ver: str = os.getenv("PUSH_PROT_VER", "2.4.2")

settings = Settings()
