"""Setup script for the agritwin package."""

from setuptools import find_packages, setup

setup(
    name="agritwin",
    version="0.1.0",
    description="AgriTwin vertical farm sensor simulation and real-time fan-out",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pymysql",
        "pyyaml",
        "python-dotenv",
        "paho-mqtt>=2.0.0",
        "aiohttp",
        "rich",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "black",
            "isort",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "agritwin-server=agritwin.server:main",
            "agritwin-display=agritwin.display:main",
            "agritwin-client=agritwin.client:main",
        ],
    },
)
