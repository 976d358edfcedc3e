import logging

import uvicorn

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    print("Starting Activity Evidence API Server...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "activity_evidence.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
