"""ASGI entrypoint for the headcount bot API."""

from headcount_bot.api.app import create_app
from headcount_bot.containers import build_container

container = build_container()
app = create_app(container)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=container.settings.host, port=container.settings.port)
