import uvicorn

from .config import API_PORT


def run():
    print(f"🚀 Starting Server on port {API_PORT}")
    uvicorn.run("valueminer.main:app", host="0.0.0.0", port=API_PORT)


if __name__ == "__main__":
    run()
