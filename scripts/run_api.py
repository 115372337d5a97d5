import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn

from carecamp.config import load_config


def main() -> None:
    cfg = load_config()
    print(f"CareCamp Server is running on port: {cfg.API_PORT}")
    uvicorn.run(
        "carecamp.api.server:create_app",
        factory=True,
        host=cfg.API_HOST,
        port=int(cfg.API_PORT),
        reload=False,
    )


if __name__ == "__main__":
    main()
