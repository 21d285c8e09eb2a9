"""nimbus-build：Nimbus 云镜像构建器"""

__version__ = "0.1.0"
