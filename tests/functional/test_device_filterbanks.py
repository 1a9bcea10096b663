"""Device Compatibility Test Suite for filterbanks.py

This test suite verifies that the ERB utilities and the gammatone filterbank work
with inputs living on all available devices (CPU, CUDA, MPS).

Contents:
- 3 standalone functions: audfiltbw, fc2erb, erb2fc
- 1 nn.Module class: GammatoneProcessor (FIR and IIR channels)

Test structure:
- Single and multiple frequency inputs
- Filterbank initialization, chunked processing, output device checks
- Module repr

Usage:
    # pytest execution
    pytest test_device_filterbanks.py -v

    # pytest execution on specific device
    pytest test_device_filterbanks.py -v -k "cpu"
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
# Test: Standalone Functions
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
def test_standalone_functions(device):
    """Test the ERB utility functions on specified device.

    Functions tested:
    - audfiltbw: Auditory filter bandwidth
    - fc2erb: Frequency to ERB-rate
    - erb2fc: ERB-rate to frequency
    """
    from torch_afe.common.filterbanks import audfiltbw, erb2fc, fc2erb

    print(f"\n{'='*80}")
    print(f"STANDALONE FUNCTIONS - Device: {device.upper()}")
    print(f"{'='*80}\n")

    functions = [('audfiltbw', audfiltbw, torch.tensor([1000.0], device=device), torch.tensor([100.0, 500.0, 1000.0, 4000.0], device=device)),
                 ('fc2erb', fc2erb, torch.tensor([1000.0], device=device), torch.tensor([500.0, 1000.0, 2000.0, 4000.0], device=device)),
                 ('erb2fc', erb2fc, torch.tensor([10.0], device=device), torch.tensor([5.0, 10.0, 20.0, 30.0], device=device)),
                 ]

    for func_name, func, input_single, input_batch in functions:
        print(f"Testing: {func_name}")

        start = time.time()
        output_single = func(input_single)
        time_single = (time.time() - start) * 1000
        assert output_single.device.type == device.split(':')[0], f"{func_name} output device mismatch"
        print(f"  ✓ Single input: {input_single.shape} -> {output_single.shape} ({time_single:.3f} ms)")

        output_batch = func(input_batch)
        assert output_batch.device.type == device.split(':')[0], f"{func_name} batch output device mismatch"
        assert output_batch.shape == input_batch.shape
        print(f"  ✓ Batch input:  {input_batch.shape} -> {output_batch.shape}")

    print(f"\n✓ All standalone functions passed on {device.upper()}\n")


# ================================================================================================
# Test: GammatoneProcessor
# ================================================================================================

@pytest.mark.parametrize("device", get_available_devices())
@pytest.mark.parametrize("ir_type", ['FIR', 'IIR'])
def test_gammatone_processor(device, ir_type):
    """Test GammatoneProcessor on specified device with FIR and IIR channels."""
    from torch_afe.common.filterbanks import GammatoneProcessor

    print(f"\n{'='*80}")
    print(f"TEST: GammatoneProcessor - Device: {device.upper()}, ir_type: {ir_type}")
    print(f"{'='*80}\n")

    fs = 16000
    fb = GammatoneProcessor(fs=fs, f_low=100, f_high=4000, n_channels=8, ir_type=ir_type).to(device)

    print(f"✓ Initialization successful")
    print(f"  Module: {fb.extra_repr()}")
    print(f"  Channels: {fb.num_channels}, cf={fb.cf_hz.numpy().round(1)}")

    x = torch.randn(1600, device=device)

    start = time.time()
    y = torch.cat([fb.process_chunk(x[:700]), fb.process_chunk(x[700:])])
    elapsed = (time.time() - start) * 1000

    assert y.device.type == device.split(':')[0]
    assert y.shape == (1600, 8)
    assert torch.isfinite(y).all()
    print(f"✓ Chunked processing: {x.shape} -> {y.shape} ({elapsed:.3f} ms)")

    # Column vector input is accepted as well
    y_col = fb(x[:100].unsqueeze(1))
    assert y_col.shape == (100, 8)
    print(f"✓ Column input: (100, 1) -> {tuple(y_col.shape)}")

    print(f"\n✓ GammatoneProcessor passed on {device.upper()} (ir_type={ir_type})\n")
