# wsgi.py
import os
from app import create_app
from config import DevelopmentConfig, ProductionConfig

config_class = ProductionConfig if os.getenv("APP_ENV", "production") == "production" else DevelopmentConfig
app = create_app(config_class)

# Local dev only: `python wsgi.py`
if __name__ == "__main__":
    port = int(os.getenv("PORT", "8080"))
    app.run(host="0.0.0.0", port=port)
