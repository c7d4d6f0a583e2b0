from setuptools import setup, find_packages

setup(name='sockecho',
      version='0.1.0',
      description='A bounded byte-stream echo service over Unix domain and TCP sockets, built on trio',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Operating System :: POSIX :: Linux",
      ],
      keywords='socket echo trio unix tcp',
      license='MIT',
      packages=find_packages(include=['sockecho', 'sockecho.*']),
      python_requires='>=3.11',
      install_requires=[
          'trio>=0.25',
          'outcome',
          'typeguard>=4',
      ],
      extras_require={
          'test': ['pytest'],
      },
      entry_points={
          'console_scripts': [
              'sockecho-serve=sockecho.scripts.serve:run',
              'sockecho-ping=sockecho.scripts.ping:run',
          ],
      },
)
