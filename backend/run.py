import os
import uvicorn

if __name__ == "__main__":
    is_dev = os.environ.get("ENVIRONMENT", "development").lower() != "production"
    uvicorn.run(
        "affilai.main:app",
        host=os.environ.get("HOST", "127.0.0.1" if is_dev else "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=is_dev,
        # Single worker: link generation single-flight lives in process memory
        workers=1,
    )
