"""CodeExecutorContext - 代码执行器保存在会话状态中的上下文"""

from __future__ import annotations

import copy
import time
from typing import Any, Optional

from ..sessions.state import State
from .code_execution_utils import File

_CONTEXT_KEY = '_code_execution_context'
_SESSION_ID_KEY = 'execution_session_id'
_PROCESSED_FILE_NAMES_KEY = 'processed_input_files'
_INPUT_FILE_KEY = '_code_executor_input_files'
_ERROR_COUNT_KEY = '_code_executor_error_counts'
_CODE_EXECUTION_RESULTS_KEY = '_code_execution_results'


class CodeExecutorContext:
    """
    代码执行器上下文

    状态布局:
    - _code_execution_context: {execution_session_id, processed_input_files}
    - _code_executor_input_files: 从对话中提取的数据文件
    - _code_executor_error_counts: invocation_id -> 连续失败次数
    - _code_execution_results: invocation_id -> 执行记录

    所有写入都经过 State，因此会出现在事件的 state_delta 中。
    """

    def __init__(self, session_state: State):
        self._session_state = session_state
        self._context: dict[str, Any] = copy.deepcopy(session_state.get(_CONTEXT_KEY) or {})

    def get_state_delta(self) -> dict[str, Any]:
        return {_CONTEXT_KEY: copy.deepcopy(self._context)}

    # ==================== 执行会话 ====================

    def get_execution_id(self) -> Optional[str]:
        return self._context.get(_SESSION_ID_KEY)

    def set_execution_id(self, session_id: str) -> None:
        self._context[_SESSION_ID_KEY] = session_id

    # ==================== 输入文件 ====================

    def get_processed_file_names(self) -> list[str]:
        return list(self._context.get(_PROCESSED_FILE_NAMES_KEY, []))

    def add_processed_file_names(self, file_names: list[str]) -> None:
        self._context.setdefault(_PROCESSED_FILE_NAMES_KEY, []).extend(file_names)

    def get_input_files(self) -> list[File]:
        return [File.model_validate(f) for f in self._session_state.get(_INPUT_FILE_KEY) or []]

    def add_input_files(self, input_files: list[File]) -> None:
        files = list(self._session_state.get(_INPUT_FILE_KEY) or [])
        files.extend(f.model_dump() for f in input_files)
        self._session_state[_INPUT_FILE_KEY] = files

    def clear_input_files(self) -> None:
        if _INPUT_FILE_KEY in self._session_state:
            self._session_state[_INPUT_FILE_KEY] = []
        if _PROCESSED_FILE_NAMES_KEY in self._context:
            self._context[_PROCESSED_FILE_NAMES_KEY] = []

    # ==================== 错误计数 ====================

    def get_error_count(self, invocation_id: str) -> int:
        return (self._session_state.get(_ERROR_COUNT_KEY) or {}).get(invocation_id, 0)

    def increment_error_count(self, invocation_id: str) -> None:
        counts = dict(self._session_state.get(_ERROR_COUNT_KEY) or {})
        counts[invocation_id] = counts.get(invocation_id, 0) + 1
        self._session_state[_ERROR_COUNT_KEY] = counts

    def reset_error_count(self, invocation_id: str) -> None:
        counts = dict(self._session_state.get(_ERROR_COUNT_KEY) or {})
        if invocation_id in counts:
            del counts[invocation_id]
            self._session_state[_ERROR_COUNT_KEY] = counts

    # ==================== 执行记录 ====================

    def update_code_execution_result(
        self,
        invocation_id: str,
        code: str,
        result_stdout: str,
        result_stderr: str,
    ) -> None:
        results = copy.deepcopy(self._session_state.get(_CODE_EXECUTION_RESULTS_KEY) or {})
        results.setdefault(invocation_id, []).append({
            'code': code,
            'result_stdout': result_stdout,
            'result_stderr': result_stderr,
            'timestamp': int(time.time()),
        })
        self._session_state[_CODE_EXECUTION_RESULTS_KEY] = results
