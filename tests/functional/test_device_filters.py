"""Device Compatibility Test Suite for filters.py

This test suite verifies that the filter engine works with inputs living on all
available devices (CPU, CUDA, MPS). Filtering itself always runs on CPU in double
precision, outputs must come back on the input device with the input dtype.

Contents:
- 1 standalone function: apply_filter
- 1 factory: leaky_integrator_filter
- 1 nn.Module class: Filter (real and complex transfer functions)

Test structure:
- Initialization
- Application on a single chunk and on successive chunks
- Output device / dtype checks
- Module repr

Usage:
    # Standalone execution (tests all available devices)
    python test_device_filters.py

    # pytest execution
    pytest test_device_filters.py -v

    # pytest execution on specific device
    pytest test_device_filters.py -v -k "cpu"
"""

import time
from typing import List

import numpy as np
import pytest
import torch


# ================================================================================================
# Device Detection
# ================================================================================================

def get_available_devices() -> List[str]:
    """Detect all available PyTorch devices on the system.

    Returns
    -------
    list of str
        List of device strings: ['cpu'], ['cpu', 'cuda'], or ['cpu', 'mps']
    """
    devices = ['cpu']

    if torch.cuda.is_available():
        devices.append('cuda')

    if torch.backends.mps.is_available():
        devices.append('mps')

    return devices


def print_device_info():
    """Print information about available devices."""
    devices = get_available_devices()

    print("\n" + "=" * 80)
    print("AVAILABLE DEVICES")
    print("=" * 80)
    print(f"CPU:  ✓ Always available")
    print(f"CUDA: {'✓ Available' if 'cuda' in devices else '✗ Not available'}")
    print(f"MPS:  {'✓ Available' if 'mps' in devices else '✗ Not available'}")
    print("=" * 80 + "\n")


# ================================================================================================
# Test Data Factories
# ================================================================================================

def create_test_audio(device: str, duration: float = 0.1, fs: int = 16000) -> torch.Tensor:
    """Create a single-channel float32 noise signal of ``duration`` seconds on ``device``."""
    n_samples = int(fs * duration)
    return torch.randn(n_samples, device=device)


# ================================================================================================
# Test: apply_filter
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
def test_apply_filter(device):
    """Test the functional filter on specified device."""
    from torch_afe.common.filters import FilterSpec, apply_filter

    print(f"\n{'='*80}")
    print(f"TEST: apply_filter - Device: {device.upper()}")
    print(f"{'='*80}\n")

    spec = FilterSpec(b=[0.2, 0.3], a=[1.0, -0.5])
    x = create_test_audio(device)

    start = time.time()
    y, state = apply_filter(spec, None, x)
    elapsed = (time.time() - start) * 1000

    assert y.device.type == device.split(':')[0], "apply_filter output device mismatch"
    assert y.dtype == x.dtype, "apply_filter output dtype mismatch"
    assert y.shape == x.shape
    assert state.device.type == 'cpu' and state.dtype == torch.float64
    assert state.shape == (1,)
    print(f"  ✓ Output: {x.shape} -> {y.shape} on {y.device} ({elapsed:.3f} ms)")
    print(f"  ✓ State: {state.shape}, dtype={state.dtype}, device={state.device}")

    # Continuing from the returned state
    y2, state2 = apply_filter(spec, state, x)
    assert y2.device.type == device.split(':')[0]
    assert state2.shape == (1,)
    print(f"  ✓ Second call from returned state")

    print(f"\n✓ apply_filter passed on {device.upper()}\n")


# ================================================================================================
# Test: Filter
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
@pytest.mark.parametrize("real_tf", [True, False])
def test_filter(device, real_tf):
    """Test Filter on specified device with real and complex transfer functions."""
    from torch_afe.common.filters import Filter, FilterSpec

    print(f"\n{'='*80}")
    print(f"TEST: Filter - Device: {device.upper()}, real_tf: {real_tf}")
    print(f"{'='*80}\n")

    if real_tf:
        spec = FilterSpec(b=[0.1, 0.2, 0.1], a=[1.0, -0.9, 0.3], fs=16000, type='Test filter')
    else:
        pole = 0.9 * np.exp(-1j * 0.3)
        spec = FilterSpec(b=[1 - 0.9], a=[1.0, -pole], real_tf=False, fs=16000, type='Test filter')

    filt = Filter(spec).to(device)
    print(f"✓ Initialization successful")
    print(f"  Module: {filt}")
    print(f"  extra_repr: {filt.extra_repr()}")

    x = create_test_audio(device)
    y = torch.cat([filt(x[:500]), filt(x[500:])])

    assert y.device.type == device.split(':')[0]
    assert not torch.is_complex(y), "Filter output must be real-valued"
    assert y.shape == x.shape
    assert filt.states.dtype == (torch.float64 if real_tf else torch.complex128)
    print(f"✓ Forward chunked: {x.shape} -> {y.shape} on {y.device}")

    filt.reset()
    assert torch.all(filt.states == 0)
    print(f"✓ Reset: states={filt.states}")

    print(f"\n✓ Filter passed on {device.upper()} (real_tf={real_tf})\n")


# ================================================================================================
# Test: leaky_integrator_filter
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
def test_leaky_integrator(device):
    """Test the leaky integrator factory on specified device."""
    from torch_afe.common.filters import leaky_integrator_filter

    print(f"\n{'='*80}")
    print(f"TEST: leaky_integrator_filter - Device: {device.upper()}")
    print(f"{'='*80}\n")

    filt = leaky_integrator_filter(fs=16000, decay_sec=8e-3)
    print(f"  Module: {filt}")

    # Constant input converges towards the input value (unit DC gain)
    x = torch.ones(16000, device=device)
    y = filt(x)
    assert y.device.type == device.split(':')[0]
    assert abs(y[-1].item() - 1.0) < 1e-4
    assert torch.all(y[1:] >= y[:-1])
    print(f"  ✓ Step response: y[0]={y[0].item():.5f}, y[-1]={y[-1].item():.5f}")

    print(f"\n✓ leaky_integrator_filter passed on {device.upper()}\n")


# ================================================================================================
# Main (standalone execution)
# ================================================================================================

def main():
    """Run all tests on all available devices."""
    print_device_info()
    devices = get_available_devices()

    tests = [('apply_filter', lambda d: test_apply_filter(d)),
             ('Filter (real)', lambda d: test_filter(d, True)),
             ('Filter (complex)', lambda d: test_filter(d, False)),
             ('leaky_integrator_filter', lambda d: test_leaky_integrator(d))]

    results = {}
    for device in devices:
        results[device] = {}
        for name, test_func in tests:
            try:
                test_func(device)
                results[device][name] = "✓ PASSED"
            except Exception as e:
                results[device][name] = f"✗ FAILED: {str(e)[:60]}"
                print(f"\n✗ {name} FAILED on {device}: {e}\n")

    print("\n" + "=" * 80)
    print("TEST SUMMARY")
    print("=" * 80 + "\n")
    for device in devices:
        print(f"{device.upper()}:")
        for name, result in results[device].items():
            print(f"  {name:35s}: {result}")
        print()

    all_passed = all("PASSED" in r for res in results.values() for r in res.values())
    return 0 if all_passed else 1


if __name__ == "__main__":
    import sys

    sys.exit(main())
