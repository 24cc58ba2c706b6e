"""Known backends, data types and bench suites."""

from __future__ import annotations

from dataclasses import dataclass, field


DTYPES: tuple[str, ...] = ("f32", "f16", "bf16")

# Cargo feature enabling each non-default float element type.
DTYPE_FEATURES: dict[str, str] = {"f16": "f16", "bf16": "bf16"}

DEFAULT_BENCHES: tuple[str, ...] = (
    "autodiff",
    "binary",
    "conv-transpose2d",
    "conv-transpose3d",
    "conv2d",
    "conv3d",
    "custom-gelu",
    "data",
    "load-record",
    "matmul",
    "matmul-fused",
    "max-pool2d",
    "reduce",
    "resnet50",
    "unary",
)


@dataclass(frozen=True)
class BackendSpec:
    """Execution target and the hardware constraints it carries.

    ``exclusive_hardware`` backends contend for a single accelerator and are
    never measured concurrently.
    """

    name: str
    dtypes: frozenset[str] = field(default_factory=lambda: frozenset({"f32"}))
    exclusive_hardware: bool = False
    features: tuple[str, ...] = ()

    def supports(self, dtype: str) -> bool:
        return dtype in self.dtypes

    def cargo_features(self, dtype: str) -> tuple[str, ...]:
        features = list(self.features or (self.name,))
        extra = DTYPE_FEATURES.get(dtype)
        if extra:
            features.append(extra)
        return tuple(features)


_ALL = frozenset(DTYPES)
_F32 = frozenset({"f32"})
_HALF = frozenset({"f32", "f16"})


def _gpu(name: str, dtypes: frozenset[str] = _ALL) -> BackendSpec:
    return BackendSpec(name=name, dtypes=dtypes, exclusive_hardware=True)


def _cpu(name: str, dtypes: frozenset[str] = _F32) -> BackendSpec:
    return BackendSpec(name=name, dtypes=dtypes, exclusive_hardware=False)


DEFAULT_BACKENDS: dict[str, BackendSpec] = {
    spec.name: spec
    for spec in (
        _cpu("candle-cpu", _ALL),
        _gpu("candle-cuda"),
        _gpu("candle-metal"),
        _gpu("cuda"),
        _gpu("cuda-fusion"),
        _gpu("rocm"),
        _gpu("rocm-fusion"),
        _cpu("ndarray"),
        _cpu("ndarray-simd"),
        _cpu("ndarray-blas-accelerate"),
        _cpu("ndarray-blas-netlib"),
        _cpu("ndarray-blas-openblas"),
        _cpu("tch-cpu", _ALL),
        _gpu("tch-cuda"),
        _gpu("tch-metal", _HALF),
        _gpu("wgpu", _F32),
        _gpu("wgpu-fusion", _F32),
        _gpu("vulkan", _HALF),
        _gpu("vulkan-fusion", _HALF),
        _gpu("metal", _HALF),
        _gpu("metal-fusion", _HALF),
    )
}


def lookup_backend(name: str, extra: dict[str, BackendSpec] | None = None) -> BackendSpec:
    """Return the backend spec; unknown names are treated as exclusive targets."""
    if extra and name in extra:
        return extra[name]
    if name in DEFAULT_BACKENDS:
        return DEFAULT_BACKENDS[name]
    return BackendSpec(name=name, dtypes=_ALL, exclusive_hardware=True)
