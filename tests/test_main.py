"""
演示流程测试：验证 main.py 中两个示例流程的最终结果。
"""

from __future__ import annotations

import pytest

import main


class TestExampleFlows:

    @pytest.mark.asyncio
    async def test_parallel_example(self):
        """retry_qr 没有依赖，第一波即独立执行，结果中包含它."""
        results = await main.run_parallel_example()

        assert results == {
            "validate_bottle": True,
            "retry_qr": "QR Manual",
            "read_label": "Label",
            "read_qr": "QRCode",
            "merge": "Final result",
        }

    @pytest.mark.asyncio
    async def test_fallback_example(self):
        results = await main.run_fallback_example()

        assert results == {"manual_mode": "ManualOK"}
