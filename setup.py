#!/usr/bin/env python3
"""
Setup script for ctest-explorer
Minimal installation with smart defaults
"""

import os
import sys
from pathlib import Path
from setuptools import setup, find_packages

# Read version from package
version = "0.1.0"

install_requires = [
    "pexpect>=4.8.0",
    "psutil>=5.9.0",  # For killing test process trees
    "pyjson5>=1.6.9",  # launch.json allows comments
    "fastjsonschema>=2.20",
    "watchdog>=2.1.0",  # For tailing debugger output files
]

extras_require = {
    "dev": [
        "pytest>=7.0.0",
        "black>=22.0.0",
        "mypy>=0.950",
    ],
}

setup(
    name="ctest-explorer",
    version=version,
    description="Discover, run and stream results of gtest executables registered with CTest",
    long_description=open("README.md").read() if Path("README.md").exists() else "",
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "ctest-explorer=ctestexplorer.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Software Development :: Testing",
    ],
)

def post_install():
    """Run post-installation setup"""
    base_dir = Path.home() / ".ctest-explorer"
    base_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(base_dir, 0o700)

    # Create default config if it doesn't exist
    config_file = base_dir / "config.json"
    if not config_file.exists():
        import json
        default_config = {
            "build_dir": "build",
            "ctest_command": "ctest",
            "log_level": "INFO",
        }
        config_file.write_text(json.dumps(default_config, indent=2))
        os.chmod(config_file, 0o600)

    print(f"✓ Created configuration directory at {base_dir}")
    print("✓ Installation complete!")
    print("\nQuick start:")
    print("  ctest-explorer list --build-dir build")
    print("  ctest-explorer run Math. --build-dir build")

# Run post-install if this is being run directly
if __name__ == "__main__" and "install" in sys.argv:
    from setuptools.command.install import install

    class PostInstallCommand(install):
        def run(self):
            install.run(self)
            post_install()

    setup(cmdclass={"install": PostInstallCommand})
