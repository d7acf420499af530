from setuptools import setup, find_namespace_packages

setup(
    name="gym-lifecycle-api",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["gym_lifecycle*"]),
    package_dir={"": "src"},
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy[asyncio]",
        "asyncpg",
        "pydantic",
        "pydantic-settings",
        "python-dotenv",
        "supabase",
        "requests",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "aiosqlite",
            "httpx",
        ],
    },
)
