from setuptools import setup, find_packages

setup(
    name="daily-lives",
    version="0.1.0",
    packages=find_packages(include=["lives", "lives.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "pydantic>=2.6",
        "pydantic-settings>=2.2",
        "sqlalchemy[asyncio]>=2.0.25",
        "asyncpg>=0.29",
        "aiosqlite>=0.20",
        "httpx>=0.27",
        "redis>=5.0",
        "tzdata",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
