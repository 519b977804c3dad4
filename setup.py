"""Setup configuration for ModBot moderation service."""

from setuptools import setup, find_packages

setup(
    name="modbot",
    version="1.0.0",
    description="Toxicity-based moderation service with an HTTP API and a Discord adapter",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
        "aiohttp>=3.9",
        "fastapi>=0.110",
        "pydantic>=2.5",
        "uvicorn>=0.29",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "modbot=modbot.main:main",
        ],
    },
)
