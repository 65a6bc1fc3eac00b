from setuptools import setup, find_packages

setup(
    name = "SchwarzPC",
    version="0.1",
    packages=find_packages(),
    install_requires=['numpy', 'scipy', 'mpi4py', 'petsc4py', 'slepc4py'],
    extras_require={'test': ['pytest']},
)
