"""构建产物：指向远程镜像的不可变句柄"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Artifact:
    """成功构建出的 Nimbus 镜像"""

    image: str
    builder_id: str

    @property
    def id(self) -> str:
        return self.image

    def files(self) -> list[str]:
        # 产物是远程镜像，没有本地文件
        return []

    def destroy(self) -> None:
        """删除产物

        远程镜像的删除语义（删除仓库中的镜像还是仅丢弃本地句柄）尚未确定，
        因此显式拒绝，而不是静默返回成功。
        """
        raise NotImplementedError(f"尚未实现 Nimbus 镜像删除: {self.image}")

    def __str__(self) -> str:
        return self.image
