"""Run the Tradebook API with uvicorn."""
import os

import uvicorn

from tradebook.api.app import create_app

app = create_app(use_lifespan=True)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.environ.get("TRADEBOOK_HOST", "0.0.0.0"),
        port=int(os.environ.get("TRADEBOOK_PORT", "8000")),
    )
