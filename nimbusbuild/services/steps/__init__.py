"""构建步骤

步骤顺序:
1. create_key_pair - 生成临时 SSH 密钥对
2. launch_instance - 启动源实例
3. connect_remote - 建立 SSH 会话
4. run_provisioners - 执行置备链
5. capture_image - 保存为新镜像
"""

from nimbusbuild.services.steps.capture_image import StepCaptureImage
from nimbusbuild.services.steps.connect_remote import StepConnectRemote
from nimbusbuild.services.steps.create_key_pair import StepCreateKeyPair
from nimbusbuild.services.steps.launch_instance import StepLaunchInstance
from nimbusbuild.services.steps.provision import StepRunProvisioners

__all__ = [
    "StepCreateKeyPair",
    "StepLaunchInstance",
    "StepConnectRemote",
    "StepRunProvisioners",
    "StepCaptureImage",
]
