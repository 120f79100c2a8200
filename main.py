import os

import uvicorn


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    # Boot the FastAPI app factory defined in iceout/main.py
    uvicorn.run("iceout.main:create_app", factory=True, host="0.0.0.0", port=port, reload=True)
