import setuptools
from pathlib import Path

ROOT = Path(__file__).parent


def read_requirements(filename: str = "requirements.txt") -> list[str]:
    req_path = ROOT / filename
    if not req_path.exists():
        return []
    reqs: list[str] = []
    for line in req_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        reqs.append(line)
    return reqs


long_description = (ROOT / "README_PYPI.md").read_text(encoding="utf-8")

setuptools.setup(
    name="celldnn",
    version="0.1.0a0",  # PEP 440 compliant
    description=(
        "celldnn is a cell execution engine for neural networks: layer cells "
        "with a uniform initialize / propagate / back-propagate / update "
        "lifecycle, running on a NumPy host backend or a CuPy CUDA backend."
    ),
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={
        "cuda12": ["cupy-cuda12x>=13.3.0"],
        "cuda11": ["cupy-cuda11x>=12.0.0"],
        "gpu": ["cupy-cuda12x>=13.3.0"],
        "test": ["pytest>=7.0.0"],
    },
    include_package_data=True,
    zip_safe=False,
)
