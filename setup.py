"""Setup for PromptMaster."""

from setuptools import setup, find_packages

setup(
    name="promptmaster",
    version="0.1.0",
    description="Interview-driven prompt engineering assistant with AI-assisted editing",
    author="The Kitchen Coder",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "gradio>=6.0.0",
        "openai>=1.0.0",
        "google-genai>=1.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "pyyaml>=6.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "promptmaster=promptmaster.app:main",
        ],
    },
    python_requires=">=3.9",
)
