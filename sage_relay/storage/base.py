"""
Storage Base - 会话存储层抽象接口
定义会话注册表与 连接→会话 索引的统一接口
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..models.session import Session


class SessionCodeExhausted(RuntimeError):
    """No free session code could be generated"""
    pass


class SessionStore(ABC):
    """
    会话存储抽象接口

    维护两张表：
    - code → Session：所有存活的会话
    - conn_id → code：参与者索引（一个连接最多属于一个会话）

    实现：
    - MemorySessionStore: 进程内存储（重启即丢失）
    """

    @abstractmethod
    def create(self) -> Session:
        """
        创建会话并分配唯一会话码

        Returns:
            新会话（状态 waiting，无参与者）

        Raises:
            SessionCodeExhausted: 多次重试后仍无法生成未占用的会话码
        """
        pass

    @abstractmethod
    def get(self, code: str) -> Optional[Session]:
        """
        获取会话

        Args:
            code: 会话码

        Returns:
            会话对象，如果不存在返回 None
        """
        pass

    @abstractmethod
    def delete(self, code: str) -> bool:
        """
        删除会话

        Args:
            code: 会话码

        Returns:
            是否成功删除
        """
        pass

    @abstractmethod
    def index_participant(self, conn_id: str, code: str) -> None:
        """记录连接所属的会话"""
        pass

    @abstractmethod
    def session_for(self, conn_id: str) -> Optional[str]:
        """
        查询连接所属的会话码

        Returns:
            会话码，如果连接未加入任何会话返回 None
        """
        pass

    @abstractmethod
    def unindex_participant(self, conn_id: str) -> None:
        """移除连接索引（不存在时静默返回）"""
        pass

    @abstractmethod
    def count(self) -> int:
        """存活会话数量"""
        pass

    @abstractmethod
    def all_sessions(self) -> Dict[str, Session]:
        """所有存活会话（副本）"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """清空所有会话与索引（进程关闭时调用）"""
        pass
