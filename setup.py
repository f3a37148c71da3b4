from setuptools import setup, find_packages
import os

# Function to read the requirements.txt file
def read_requirements():
    requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
    if not os.path.exists(requirements_path):
        print("Warning: requirements.txt not found. Proceeding without dependencies.")
        return []
    with open(requirements_path, 'r') as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Basic metadata
setup(
    name='disk-bloat-scanner',
    version='0.1.0',
    description='Disk Bloat Scanner - find large files, duplicates and regenerable bloat, and clean them up safely.',
    long_description=open('README.md').read() if os.path.exists('README.md') else '',
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    py_modules=['main'],
    install_requires=read_requirements(), # Read dependencies from requirements.txt
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.8', # Specify minimum Python version
    entry_points={
        'console_scripts': [
            'disk-bloat-scanner = main:main', # This creates the 'disk-bloat-scanner' command
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX',
        'Operating System :: MacOS',
        'Topic :: System :: Filesystems',
        'Topic :: Utilities',
    ],
)
