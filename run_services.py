import uvicorn

from shared.core.config import settings

if __name__ == "__main__":
    try:
        uvicorn.run(
            "inventory_service.app.main:app",
            host="0.0.0.0",
            port=settings.PORT,
            reload=not settings.is_production,
        )
    except KeyboardInterrupt:
        print("\nShutting down server...")
