from setuptools import setup, find_packages

setup(
    name="signage-player",
    version="0.1.0",
    description="Digital signage player with device pairing and playlist sync",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"signage_player": ["default_config.yaml"]},
    python_requires=">=3.8",
    install_requires=[
        "PyYAML>=6.0",
        "requests>=2.31.0",
        "python-socketio[client]>=5.10.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "black>=23.0.0",
            "pylint>=2.17.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "signage-player=signage_player.player.app:main",
        ]
    },
)
