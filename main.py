"""
Annotator Host
Flask application that hosts annotator modules and serves their web-apps.
"""

import atexit
import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from annotator_host.app import create_app
from annotator_host.config import HostConfig
from annotator_host.webapps.routes import SERVICES_KEY

config = HostConfig()

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(config)

# Cancel pending task web-app evictions on shutdown
atexit.register(app.extensions[SERVICES_KEY].shutdown)


if __name__ == '__main__':
    port = int(os.getenv("PORT", 8080))
    debug = os.getenv("DEBUG", "false").lower() == "true"

    print(f"🚀 Starting Annotator Host on port {port}")
    print(f"📦 Annotators: {config.annotator_dir}")

    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)
