import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from terminus import storage
from terminus.routes import router
from terminus.session import SessionRegistry

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None, presets_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved, presets_dir=presets_dir)

    app = FastAPI(title="Grand Central Terminus")
    app.state.kv = storage.FileKeyValueStore()
    app.state.sessions = SessionRegistry(storage.get_config()["sessions"]["max_open"])
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
