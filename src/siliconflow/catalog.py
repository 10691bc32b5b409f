"""
Kernel profile and enterprise task catalogs.

Kernel profiles describe the shape of the workload the warp scheduler runs
(how often warps miss in cache, how much work each instruction retires).
Enterprise tasks are workload presets: selecting one sets the chip-wide
workload level to the task's load profile.

Both catalogs are immutable. The engine keeps its own (possibly patched) copy
of the active kernel, so the entries here never change at runtime.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any


class TaskCategory(Enum):
    """Enterprise task families."""

    AI = "AI"
    BUSINESS = "BUSINESS"
    SCIENCE = "SCIENCE"


@dataclass(frozen=True)
class KernelProfile:
    """Workload-shape parameters applied to the active simulation."""

    id: str
    name: str
    description: str
    stall_probability: float  # 0..1, per dispatched tick
    compute_intensity: float  # 1..15, progress step is half of this
    memory_pressure: int  # 1..10
    register_requirement: int

    @property
    def compute_step(self) -> float:
        """Progress a dispatched warp gains per scheduler tick."""
        return self.compute_intensity / 2

    @property
    def mask_chance(self) -> float:
        """Probability that a lane is inactive after a divergence re-roll."""
        return (10 - self.compute_intensity) / 20


# Valid ranges for patchable kernel parameters
KERNEL_PARAM_RANGES: dict[str, tuple[float, float]] = {
    "stall_probability": (0.0, 1.0),
    "compute_intensity": (1.0, 15.0),
    "memory_pressure": (1.0, 10.0),
    "register_requirement": (0.0, 255.0),
}


@dataclass(frozen=True)
class EnterpriseTask:
    """Enterprise workload preset."""

    id: str
    category: TaskCategory
    name: str
    description: str
    load_profile: int  # 0..100, becomes the global workload
    target_compute: int
    target_memory: int
    target_pcie: int
    expected_latency: str


KERNEL_PROFILES: tuple[KernelProfile, ...] = (
    KernelProfile(
        id="gemm",
        name="Tensor GEMM (FP16)",
        description="Large Matrix Multiplication.",
        stall_probability=0.02,
        compute_intensity=9,
        memory_pressure=4,
        register_requirement=8,
    ),
    KernelProfile(
        id="fft",
        name="FFT (Radix-4)",
        description="Fast Fourier Transform.",
        stall_probability=0.08,
        compute_intensity=5,
        memory_pressure=9,
        register_requirement=5,
    ),
    KernelProfile(
        id="raytrace",
        name="BVH Traversal",
        description="Ray-Box intersection testing.",
        stall_probability=0.25,
        compute_intensity=4,
        memory_pressure=6,
        register_requirement=4,
    ),
)

ENTERPRISE_TASKS: tuple[EnterpriseTask, ...] = (
    EnterpriseTask(
        id="sci-nwp",
        category=TaskCategory.SCIENCE,
        name="Weather NWP",
        description="Global grid Numerical Weather Prediction.",
        load_profile=92,
        target_compute=9,
        target_memory=8,
        target_pcie=4,
        expected_latency="High",
    ),
    EnterpriseTask(
        id="sci-drug",
        category=TaskCategory.SCIENCE,
        name="In Silico Discovery",
        description="VHTS Ligand Docking simulation.",
        load_profile=82,
        target_compute=7,
        target_memory=5,
        target_pcie=9,
        expected_latency="Medium",
    ),
    EnterpriseTask(
        id="ai-train",
        category=TaskCategory.AI,
        name="LLM Training",
        description="Parameter gradient updates.",
        load_profile=95,
        target_compute=10,
        target_memory=8,
        target_pcie=5,
        expected_latency="High",
    ),
    EnterpriseTask(
        id="bus-stock",
        category=TaskCategory.BUSINESS,
        name="HFT Trading",
        description="Ultra-low latency limit order execution.",
        load_profile=40,
        target_compute=4,
        target_memory=3,
        target_pcie=10,
        expected_latency="Ultra",
    ),
)

DEFAULT_KERNEL = KERNEL_PROFILES[0]


def get_kernel_profile(profile_id: str) -> KernelProfile:
    """Look up a kernel profile by id (raises KeyError if unknown)."""
    for profile in KERNEL_PROFILES:
        if profile.id == profile_id:
            return profile
    raise KeyError(f"Unknown kernel profile: {profile_id!r}")


def get_enterprise_task(task_id: str) -> EnterpriseTask:
    """Look up an enterprise task by id (raises KeyError if unknown)."""
    for task in ENTERPRISE_TASKS:
        if task.id == task_id:
            return task
    raise KeyError(f"Unknown enterprise task: {task_id!r}")


def tasks_in_category(category: TaskCategory) -> list[EnterpriseTask]:
    """All catalog tasks belonging to a category."""
    return [task for task in ENTERPRISE_TASKS if task.category == category]


def validate_kernel_params(params: dict[str, Any]) -> None:
    """
    Check a kernel parameter patch.

    Raises:
        ValueError: If a field is not patchable or a value is out of range.
    """
    patchable = {f.name for f in fields(KernelProfile)} - {"id"}
    for name, value in params.items():
        if name not in patchable:
            raise ValueError(f"Kernel profile has no patchable field {name!r}")
        if name in KERNEL_PARAM_RANGES:
            lo, hi = KERNEL_PARAM_RANGES[name]
            if not lo <= value <= hi:
                raise ValueError(f"{name} must be in [{lo}, {hi}], got {value}")


def patch_kernel(profile: KernelProfile, **params: Any) -> KernelProfile:
    """Return a copy of ``profile`` with individual fields overridden."""
    validate_kernel_params(params)
    return replace(profile, **params)


def restore_kernel(profile: KernelProfile) -> KernelProfile:
    """Return the pristine catalog entry a (possibly patched) profile came from."""
    return get_kernel_profile(profile.id)
