from setuptools import setup, find_packages

setup(
    name="website-profiler",
    version="0.1",
    package_dir={"": "src"},
    packages=find_packages("src"),
    py_modules=["api", "app"],
    python_requires=">=3.9",
    install_requires=[
        "langchain",
        "langchain-google-genai",
        "langchain-deepseek",
        "beautifulsoup4",
        "python-dotenv",
        "aiohttp",
        "pydantic>=2",
        "fastapi",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "website-profiler=profiler.cli:main",
        ],
    },
)
