import os

from ecomove import create_app
from ecomove.config import DevConfig, ProdConfig


def _en_produccion() -> bool:
    if os.getenv("ECOMOVE_ENV", "").lower() in ("prod", "production"):
        return True
    # Railway expone estas variables en sus contenedores
    return any(
        os.getenv(k)
        for k in (
            "RAILWAY_PROJECT_ID",
            "RAILWAY_SERVICE_ID",
            "RAILWAY_ENVIRONMENT",
        )
    )


config = ProdConfig if _en_produccion() else DevConfig
app = create_app(config)

if __name__ == "__main__":
    app.run()
