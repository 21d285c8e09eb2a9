"""StepCreateKeyPair 测试"""

from __future__ import annotations

import io
import os
import stat

import paramiko
import pytest

from nimbusbuild.core.state import FAILURE, PRIVATE_KEY, PUBLIC_KEY_PATH, StateBag
from nimbusbuild.core.step import StepAction
from nimbusbuild.services.steps import StepCreateKeyPair

# 测试中使用较短密钥，缩短生成时间
BITS = 1024


class TestCreateKeyPair:
    """临时密钥对测试"""

    def test_key_pair_written(self, bag: StateBag):
        step = StepCreateKeyPair(bits=BITS)
        assert step.execute(bag) is StepAction.CONTINUE

        pem = bag.get(PRIVATE_KEY)
        key = paramiko.RSAKey.from_private_key(io.StringIO(pem))
        pub_path = bag.get(PUBLIC_KEY_PATH)
        with open(pub_path, encoding="utf-8") as f:
            line = f.read()
        assert line == f"ssh-rsa {key.get_base64()}\n"

        step.compensate(bag)
        assert not os.path.exists(pub_path)

    def test_fresh_key_each_run(self, bag: StateBag):
        a, b = StepCreateKeyPair(bits=BITS), StepCreateKeyPair(bits=BITS)
        a.execute(bag)
        first = bag.get(PRIVATE_KEY)
        b.execute(bag)
        assert bag.get(PRIVATE_KEY) != first
        a.compensate(bag)
        b.compensate(bag)

    def test_compensate_tolerates_missing_file(self, bag: StateBag):
        step = StepCreateKeyPair(bits=BITS)
        step.execute(bag)
        os.remove(bag.get(PUBLIC_KEY_PATH))
        step.compensate(bag)
        step.compensate(bag)

    def test_compensate_without_execute(self, bag: StateBag):
        StepCreateKeyPair().compensate(bag)

    def test_debug_key_saved_and_kept(self, bag: StateBag, tmp_path):
        key_path = tmp_path / "nimbus_nimbus.pem"
        step = StepCreateKeyPair(debug=True, debug_key_path=str(key_path), bits=BITS)
        step.execute(bag)
        assert key_path.read_text(encoding="utf-8") == bag.get(PRIVATE_KEY)
        assert stat.S_IMODE(key_path.stat().st_mode) == 0o600

        step.compensate(bag)
        assert key_path.exists()

    def test_debug_key_write_failure_halts(self, bag: StateBag, tmp_path, ui):
        step = StepCreateKeyPair(
            debug=True, debug_key_path=str(tmp_path / "missing" / "k.pem"), bits=BITS,
        )
        assert step.execute(bag) is StepAction.HALT
        assert "保存调试私钥失败" in str(bag.get(FAILURE))
        assert PUBLIC_KEY_PATH not in bag
        assert ui.errors

    def test_generation_failure_halts(self, bag: StateBag, monkeypatch: pytest.MonkeyPatch):
        def broken(bits: int) -> paramiko.RSAKey:
            raise paramiko.SSHException("no entropy")

        monkeypatch.setattr(paramiko.RSAKey, "generate", staticmethod(broken))
        assert StepCreateKeyPair().execute(bag) is StepAction.HALT
        assert "no entropy" in str(bag.get(FAILURE))
        assert PRIVATE_KEY not in bag
