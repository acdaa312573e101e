"""
Shared test fixtures for droplet morphometry tests.

Builds synthetic measurement exports and specimen directory trees with
pandas so every stage can be exercised on real files in ``tmp_path``.
"""

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from droplet_morphometry.analysis.droplet_schema import DESCRIPTOR_COLUMN_MAP, MERGED_COLUMNS


def make_coordinates(labels: Sequence[int], seed: int = 0) -> pd.DataFrame:
    """Segmentation-style export: zero-based ``Label`` plus centroids."""
    rng = np.random.default_rng(seed)
    labels = list(labels)
    return pd.DataFrame({
        'Label': labels,
        'X': rng.uniform(0, 500, len(labels)).round(2),
        'Y': rng.uniform(0, 500, len(labels)).round(2),
    })


def make_descriptors(
    indices: Sequence[int],
    areas: Optional[Sequence[float]] = None,
    ferets: Optional[Sequence[float]] = None,
    image: Optional[str] = "specimen.tif",
    seed: int = 0
) -> pd.DataFrame:
    """Measurement-style export: first column embeds the one-based droplet index."""
    rng = np.random.default_rng(seed)
    indices = list(indices)
    n = len(indices)
    areas = np.full(n, 50.0) if areas is None else np.asarray(areas, dtype=float)
    ferets = np.full(n, 8.0) if ferets is None else np.asarray(ferets, dtype=float)

    table = pd.DataFrame({'Name': [f"droplet{i}" for i in indices]})
    if image is not None:
        table['Label'] = image
    values = {
        'Area': areas,
        'Perim.': rng.uniform(20, 40, n),
        'Circ.': rng.uniform(0.6, 1.0, n),
        'Feret': ferets,
        'FeretX': rng.uniform(0, 500, n),
        'FeretY': rng.uniform(0, 500, n),
        'FeretAngle': rng.uniform(0, 180, n),
        'MinFeret': ferets * 0.8,
        'AR': rng.uniform(1.0, 1.5, n),
        'Round': rng.uniform(0.6, 1.0, n),
        'Solidity': rng.uniform(0.8, 1.0, n),
        'MinThr': np.zeros(n),
        'MaxThr': np.full(n, 255.0),
    }
    for column in DESCRIPTOR_COLUMN_MAP:
        table[column] = values[column]
    return table


def make_merged_table(n_droplets: int, area: float = 50.0, feret: float = 8.0,
                      seed: int = 0) -> pd.DataFrame:
    """A table already in the merged 17-column projection."""
    rng = np.random.default_rng(seed)
    table = pd.DataFrame({
        'label': np.arange(1, n_droplets + 1),
        'x': rng.uniform(0, 500, n_droplets),
        'y': rng.uniform(0, 500, n_droplets),
        'image': "specimen.tif",
    })
    for column in MERGED_COLUMNS[4:]:
        table[column] = rng.uniform(0, 1, n_droplets)
    table['area'] = area
    table['feret_diameter'] = feret
    return table[MERGED_COLUMNS]


def log_feret(area_sum: float) -> float:
    """Ground-truth control relationship used by the synthetic cohorts."""
    return 2.0 + 1.5 * np.log(area_sum)


def write_specimen(folder: Path, n_droplets: int, droplet_area: float,
                   feret_shift: float = 0.0, seed: int = 0) -> Path:
    """Write a specimen folder holding coords.csv and Results.csv."""
    folder.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(seed)
    area_sum = n_droplets * droplet_area
    ferets = log_feret(area_sum) + feret_shift + rng.normal(0, 0.05, n_droplets)

    make_coordinates(range(n_droplets), seed=seed).to_csv(folder / "coords.csv", index=False)
    make_descriptors(
        range(1, n_droplets + 1),
        areas=np.full(n_droplets, droplet_area),
        ferets=ferets,
        image=f"{folder.name}.tif",
        seed=seed
    ).to_csv(folder / "Results.csv", index=False)
    return folder


@pytest.fixture
def random_seed():
    """Ensure deterministic tests."""
    np.random.seed(42)


@pytest.fixture
def specimen_dir(tmp_path):
    """One specimen with 6 coordinate rows and 6 descriptor rows."""
    return write_specimen(tmp_path / "cohort" / "mouse01", n_droplets=6, droplet_area=40.0)


@pytest.fixture
def control_cohort(tmp_path):
    """Twelve control specimens spread over two group folders."""
    root = tmp_path / "control"
    for k in range(12):
        group = "groupA" if k % 2 == 0 else "groupB"
        write_specimen(root / group / f"ctrl{k:02d}", n_droplets=5 + k,
                       droplet_area=20.0 + 7.0 * k, seed=k)
    return root


@pytest.fixture
def experimental_cohort(tmp_path):
    """Eight experimental specimens with droplets one unit larger than control."""
    root = tmp_path / "experimental"
    for k in range(8):
        write_specimen(root / f"exp{k:02d}", n_droplets=6 + k,
                       droplet_area=25.0 + 8.0 * k, feret_shift=1.0, seed=100 + k)
    return root


@pytest.fixture
def control_summary():
    """Summary table of 20 control specimens following ``log_feret`` exactly."""
    area_sum = np.linspace(200.0, 5000.0, 20)
    return pd.DataFrame({
        'file_name': [f"ctrl{i:02d}_withoutCoords.csv" for i in range(20)],
        'area_sum': area_sum,
        'feret_diameter_mean': log_feret(area_sum)
    })
