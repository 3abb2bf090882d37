"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from maestro import __version__
from maestro.api.endpoints import router
from maestro.utils.logging import setup_logging

setup_logging()

app = FastAPI(
    title="Maestro",
    description="Conversation engine letting Claude operate the computer through tools.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Conversation",
            "description": "Send messages and cancel in-flight tool-use loops.",
        },
        {
            "name": "Sessions",
            "description": "Read the message history of a chat session.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# The desktop shell serves the UI from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("maestro.main:app", host="127.0.0.1", port=9001, reload=True, log_level="info")
