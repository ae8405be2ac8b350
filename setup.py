# setup.py
"""
Setup configuration for dynasweep v1.0.0

Post-processing of neural simulation sweeps:
- Result records, studies on disk (one pickle per run plus studyinfo)
- Data selection by time window, region of interest and varied parameter values
- Dispatch of analysis and plot functions over sweeps, lazily per run for studies
- Sweep-aware result annotation and file naming
- MPI sweep runner and parallel analysis runner
"""

from setuptools import setup, find_packages
import os

def read_readme():
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    try:
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return ("Select, analyze and plot simulated neural data across parameter sweeps, "
                "with lazy per-run loading and parallel dispatch")

def read_requirements():
    requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
    try:
        with open(requirements_path, 'r', encoding='utf-8') as f:
            requirements = []
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    requirements.append(line)
            return requirements
    except FileNotFoundError:
        return [
            "numpy>=1.20.0",
            "scipy>=1.7.0",
            "mpi4py>=3.1.0",
            "psutil>=5.8.0",
            "matplotlib>=3.5.0",
        ]

setup(
    name="dynasweep",
    version="1.0.0",
    description="Selection, analysis and plotting of simulated neural data across parameter sweeps",
    long_description=read_readme(),
    long_description_content_type="text/markdown",

    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,

    python_requires=">=3.8",
    install_requires=read_requirements(),

    extras_require={
        "dev": [
            "pytest>=6.0.0",
        ],
    },

    entry_points={
        'console_scripts': [
            'dynasweep-test=tests.test_installation:main',
            'dynasweep-sweep=runners.sweep_runner:main',
            'dynasweep-analyze=runners.analyze_runner:main',
        ],
    },

    classifiers=[
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Programming Language :: Python :: 3",
    ],

    keywords=[
        "computational neuroscience",
        "parameter sweeps",
        "simulation post-processing",
        "spiking neural networks",
    ],

    zip_safe=False,
    platforms=["any"],
)
