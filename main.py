from dotenv import load_dotenv
import uvicorn
import logging
import os
import pathlib
from app.app import make_app
from app.internal.config import NodeConfig
from app.internal.settings import Settings

os.environ["APP_INSTALLDIR"] = os.path.dirname(os.path.abspath(__file__))
load_dotenv(
    pathlib.Path(os.getenv("APP_INSTALLDIR")).joinpath(".env"),
    override=True,
)
Settings.read_environments()
logging.basicConfig(
    level=Settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = make_app(NodeConfig.from_settings(), root_path=Settings.root_path)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=Settings.host,
        port=Settings.port,
        log_level=Settings.log_level.lower(),
    )
