"""Device Compatibility Test Suite for ratemap.py and the complete front-end

This test suite verifies that the ratemap extractor and the GammatoneRatemap model
work with inputs living on all available devices (CPU, CUDA, MPS).

Contents:
- 1 nn.Module class: RatemapProcessor ('magnitude' and 'power' scaling)
- 1 model: GammatoneRatemap

Test structure:
- Initialization
- Chunked processing, output shape / device checks
- Carry-over buffer device and dtype
- Module repr

Usage:
    # pytest execution
    pytest test_device_ratemap.py -v

    # pytest execution on specific device
    pytest test_device_ratemap.py -v -k "cpu"
"""

import time
from typing import List

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


# ================================================================================================
# Test: RatemapProcessor
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
@pytest.mark.parametrize("scaling", ['magnitude', 'power'])
def test_ratemap_processor(device, scaling):
    """Test RatemapProcessor on specified device."""
    from torch_afe.common.ratemap import RatemapProcessor

    print(f"\n{'='*80}")
    print(f"TEST: RatemapProcessor - Device: {device.upper()}, scaling: {scaling}")
    print(f"{'='*80}\n")

    fs = 16000
    rm = RatemapProcessor(fs=fs, scaling=scaling).to(device)
    print(f"✓ Initialization successful")
    print(f"  Module: {rm}")
    print(f"  w_size={rm.w_size}, h_size={rm.h_size}, fs_out={rm.fs_hz_out} Hz")

    env = torch.rand(1600, 4, device=device)

    start = time.time()
    out1 = rm.process_chunk(env[:800])
    out2 = rm.process_chunk(env[800:])
    elapsed = (time.time() - start) * 1000

    for out in (out1, out2):
        assert out.device.type == device.split(':')[0]
        assert out.dtype == env.dtype
        assert out.shape[1] == 4
    assert out1.shape[0] + out2.shape[0] == 9
    print(f"✓ Chunked processing: {tuple(env.shape)} -> {out1.shape[0]} + {out2.shape[0]} frames ({elapsed:.3f} ms)")

    assert rm.buffer.device.type == device.split(':')[0]
    assert rm.buffer.shape[1] == 4
    print(f"✓ Buffer: {tuple(rm.buffer.shape)} on {rm.buffer.device}")

    if scaling == 'power':
        assert (torch.cat([out1, out2]) >= 0).all()

    print(f"\n✓ RatemapProcessor passed on {device.upper()} (scaling={scaling})\n")


# ================================================================================================
# Test: GammatoneRatemap
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
def test_gammatone_ratemap(device):
    """Test the complete front-end on specified device."""
    from torch_afe.models import GammatoneRatemap

    print(f"\n{'='*80}")
    print(f"TEST: GammatoneRatemap - Device: {device.upper()}")
    print(f"{'='*80}\n")

    fs = 16000
    model = GammatoneRatemap(fs=fs, params={'gt_lowFreqHz': 100, 'gt_highFreqHz': 4000,
                                            'gt_nChannels': 6, 'gt_type': 'IIR'}).to(device)
    print(f"✓ Initialization successful")
    print(f"  Module: {model}")

    x = torch.randn(3200, device=device)
    out = torch.cat([model(x[:1000]), model(x[1000:])])

    assert out.device.type == device.split(':')[0]
    assert out.shape == (19, 6)
    assert torch.isfinite(out).all()
    print(f"✓ Forward chunked: {tuple(x.shape)} -> {tuple(out.shape)}")

    print(f"\n✓ GammatoneRatemap passed on {device.upper()}\n")
