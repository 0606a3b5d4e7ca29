import uvicorn

from arena.config import Config


def main():
    uvicorn.run("arena.main:app", host=Config.HOST, port=Config.PORT, log_level="debug" if Config.DEBUG else "info")


if __name__ == "__main__":
    main()
