from setuptools import setup, find_packages

setup(
    name="livequiz",
    version="0.1.0",
    description="Live lecture transcription that turns the instructor's questions into quizzes for every student",
    author="",
    python_requires=">=3.10",
    packages=find_packages(include=["livequiz", "livequiz.*"]),
    install_requires=[
        "pyaudio>=0.2.11",
        "numpy>=1.21.0",
        "google-cloud-speech>=2.16.0",
        "google-auth>=2.10.0",
        "rich>=12.5.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.8.0",
        "aiosqlite>=0.19.0",
        "rapidfuzz>=3.0.0",
    ],
    extras_require={
        "tests": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "livequiz=livequiz.main:main",
        ],
    },
)
