import os

import uvicorn

if __name__ == "__main__":
    # Change host to 127.0.0.1 if you don't want other devices in your LAN being able to access the service
    uvicorn.run(
        "photoshare:create_app",
        factory=True,
        host=os.environ.get("PHOTOSHARE_HOST", "0.0.0.0"),
        port=int(os.environ.get("PHOTOSHARE_PORT", "8000")),
        reload=os.environ.get("PHOTOSHARE_RELOAD", "").lower() in ("1", "true", "yes"),
    )
