
import uvicorn

from dbexport.core import config
from dbexport.main import app

# Point d'entrée principal
if __name__ == "__main__":
    # [CONFIG] Port 80 by default (standard HTTP); override with HOST / PORT.
    uvicorn.run(app, host=config.HOST, port=config.PORT)
