"""代码执行处理器 - 执行模型写出的代码块，并预处理对话中的数据文件"""

from __future__ import annotations

import base64
import logging
import re
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from typing_extensions import override

from ...code_executors.base_code_executor import BaseCodeExecutor
from ...code_executors.built_in_code_executor import BuiltInCodeExecutor
from ...code_executors.code_execution_utils import (
    CodeExecutionInput,
    CodeExecutionResult,
    File,
    build_code_execution_result_part,
    build_executable_code_part,
    convert_code_execution_parts,
    extract_code_and_truncate_content,
    get_encoded_file_content,
)
from ...code_executors.code_executor_context import CodeExecutorContext
from ...events import Event, EventActions
from ...sessions.state import State
from ...types import Blob, Content, Part
from ..base_llm_processor import BaseLlmRequestProcessor, BaseLlmResponseProcessor

if TYPE_CHECKING:
    from ...agents.invocation_context import InvocationContext
    from ...models.llm_request import LlmRequest
    from ...models.llm_response import LlmResponse

logger = logging.getLogger(__name__)

# mime type -> (扩展名, 加载代码模板)
DATA_FILE_UTIL_MAP: dict[str, tuple[str, str]] = {
    'text/csv': ('.csv', "pd.read_csv('{filename}')"),
}

DATA_FILE_HELPER_LIB = '''
import pandas as pd

def explore_df(df: pd.DataFrame) -> None:
  """Prints some information about a pandas DataFrame."""

  with pd.option_context(
      'display.max_columns', None, 'display.expand_frame_repr', False
  ):
    # Print the column names to never encounter KeyError when selecting one.
    df_dtypes = df.dtypes

    # Obtain information about data types and missing values.
    df_nulls = (len(df) - df.isnull().sum()).apply(
        lambda x: f'{x} / {df.shape[0]} non-null'
    )

    # Explore unique total values in columns using `.unique()`.
    df_unique_count = df.apply(lambda x: len(x.unique()))

    # Explore unique values in columns using `.unique()`.
    df_unique = df.apply(lambda x: crop(str(list(x.unique()))))

    df_info = pd.concat(
        (
            df_dtypes.rename('Dtype'),
            df_nulls.rename('Non-Null Count'),
            df_unique_count.rename('Unique Values Count'),
            df_unique.rename('Unique Values'),
        ),
        axis=1,
    )
    df_info.index.name = 'Columns'
    print(f"""Total rows: {df.shape[0]}
Total columns: {df.shape[1]}

{df_info}""")

def crop(text: str, max_length: int = 100) -> str:
    """Crop text to maximum length with ellipsis."""
    return text if len(text) <= max_length else text[:max_length] + "..."
'''


def _get_code_executor(invocation_context: 'InvocationContext') -> Optional[BaseCodeExecutor]:
    code_executor = getattr(invocation_context.agent, 'code_executor', None)
    if isinstance(code_executor, BaseCodeExecutor):
        return code_executor
    return None


class _ExecutionState:
    """执行器上下文和它产生的状态增量"""

    def __init__(self, invocation_context: 'InvocationContext'):
        self.delta: dict = {}
        self.state = State(value=invocation_context.session.state, delta=self.delta)
        self.context = CodeExecutorContext(self.state)


class CodeExecutionRequestProcessor(BaseLlmRequestProcessor):

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_request: 'LlmRequest',
    ) -> AsyncGenerator[Event, None]:
        code_executor = _get_code_executor(invocation_context)
        if code_executor is None:
            return

        async for event in _run_pre_processor(invocation_context, llm_request, code_executor):
            yield event

        if isinstance(code_executor, BuiltInCodeExecutor):
            return
        # 把代码/结果 part 转成带分隔符的文本
        for content in llm_request.contents:
            convert_code_execution_parts(
                content,
                code_executor.code_block_delimiters[0] if code_executor.code_block_delimiters else ('', ''),
                code_executor.execution_result_delimiters,
            )


class CodeExecutionResponseProcessor(BaseLlmResponseProcessor):

    @override
    async def run_async(
        self,
        invocation_context: 'InvocationContext',
        llm_response: 'LlmResponse',
    ) -> AsyncGenerator[Event, None]:
        if llm_response.partial:
            return
        code_executor = _get_code_executor(invocation_context)
        if code_executor is None or isinstance(code_executor, BuiltInCodeExecutor):
            return
        async for event in _run_post_processor(invocation_context, llm_response, code_executor):
            yield event


request_processor = CodeExecutionRequestProcessor()
response_processor = CodeExecutionResponseProcessor()


# ==================== 请求侧 ====================

async def _run_pre_processor(
    invocation_context: 'InvocationContext',
    llm_request: 'LlmRequest',
    code_executor: BaseCodeExecutor,
) -> AsyncGenerator[Event, None]:
    """执行器内置于模型时只声明能力；开启 optimize_data_file 时先探索数据文件"""
    if isinstance(code_executor, BuiltInCodeExecutor):
        code_executor.process_llm_request(llm_request)
        return

    if not code_executor.optimize_data_file:
        return

    execution = _ExecutionState(invocation_context)
    if execution.context.get_error_count(invocation_context.invocation_id) >= code_executor.error_retry_attempts:
        return

    all_input_files = extract_and_replace_inline_files(execution.context, llm_request)
    processed_file_names = set(execution.context.get_processed_file_names())

    for file in all_input_files:
        if file.name in processed_file_names:
            continue
        code_str = get_data_file_preprocessing_code(file)
        if not code_str:
            continue

        code_content = Content(
            role='model',
            parts=[
                Part(text=f"Processing input file: `{file.name}`"),
                build_executable_code_part(code_str),
            ],
        )
        llm_request.contents.append(code_content.model_copy(deep=True))
        yield Event(
            invocation_id=invocation_context.invocation_id,
            author=invocation_context.agent.name,
            branch=invocation_context.branch,
            content=code_content,
        )

        result = await code_executor.execute_code(
            invocation_context,
            CodeExecutionInput(
                code=code_str,
                input_files=[file],
                execution_id=_get_or_set_execution_id(invocation_context, execution.context),
            ),
        )
        execution.context.update_code_execution_result(
            invocation_context.invocation_id, code_str, result.stdout, result.stderr
        )
        execution.context.add_processed_file_names([file.name])

        result_event = await post_process_code_execution_result(invocation_context, execution, result)
        yield result_event
        llm_request.contents.append(result_event.content.model_copy(deep=True))


def extract_and_replace_inline_files(
    code_executor_context: CodeExecutorContext,
    llm_request: 'LlmRequest',
) -> list[File]:
    """把用户消息里的数据文件替换为文件名提示，并登记为执行器输入文件"""
    all_input_files = code_executor_context.get_input_files()
    saved_file_names = {f.name for f in all_input_files}

    for i, content in enumerate(llm_request.contents):
        if content.role != 'user' or not content.parts:
            continue
        for j, part in enumerate(content.parts):
            if part.inline_data is None or part.inline_data.mime_type not in DATA_FILE_UTIL_MAP:
                continue
            mime_type = part.inline_data.mime_type
            file_name = f"data_{i + 1}_{j + 1}{DATA_FILE_UTIL_MAP[mime_type][0]}"
            content.parts[j] = Part(text=f"\nAvailable file: `{file_name}`\n")

            file = File(
                name=file_name,
                content=get_encoded_file_content(part.inline_data.data),
                mime_type=mime_type,
            )
            if file_name not in saved_file_names:
                code_executor_context.add_input_files([file])
                all_input_files.append(file)
                saved_file_names.add(file_name)

    return all_input_files


def get_data_file_preprocessing_code(file: File) -> Optional[str]:
    """生成加载并探索数据文件的代码"""
    if file.mime_type not in DATA_FILE_UTIL_MAP:
        return None

    var_name = re.sub(r'[^a-zA-Z0-9_]', '_', file.name.split('.')[0])
    if var_name and var_name[0].isdigit():
        var_name = f"_{var_name}"
    loader_code = DATA_FILE_UTIL_MAP[file.mime_type][1].format(filename=file.name)

    return f"""
{DATA_FILE_HELPER_LIB}

# Load the dataframe.
{var_name} = {loader_code}

# Use `explore_df` to guide my analysis.
explore_df({var_name})
"""


# ==================== 响应侧 ====================

async def _run_post_processor(
    invocation_context: 'InvocationContext',
    llm_response: 'LlmResponse',
    code_executor: BaseCodeExecutor,
) -> AsyncGenerator[Event, None]:
    """
    从响应中提取代码并执行

    产生两个事件：截断到代码为止的模型响应、执行结果。
    之后清空响应内容，结果事件以代码执行结果结尾，因此 Flow 会继续下一步。
    """
    if not llm_response.content:
        return

    execution = _ExecutionState(invocation_context)
    if execution.context.get_error_count(invocation_context.invocation_id) >= code_executor.error_retry_attempts:
        return

    response_content = llm_response.content
    code_str = extract_code_and_truncate_content(response_content, code_executor.code_block_delimiters)
    if not code_str:
        return

    yield Event(
        invocation_id=invocation_context.invocation_id,
        author=invocation_context.agent.name,
        branch=invocation_context.branch,
        content=response_content,
        actions=EventActions(),
    )

    result = await code_executor.execute_code(
        invocation_context,
        CodeExecutionInput(
            code=code_str,
            input_files=execution.context.get_input_files(),
            execution_id=_get_or_set_execution_id(invocation_context, execution.context),
        ),
    )
    execution.context.update_code_execution_result(
        invocation_context.invocation_id, code_str, result.stdout, result.stderr
    )
    yield await post_process_code_execution_result(invocation_context, execution, result)

    llm_response.content = None


def _get_or_set_execution_id(
    invocation_context: 'InvocationContext',
    code_executor_context: CodeExecutorContext,
) -> Optional[str]:
    """有状态执行器在整个会话中复用同一个执行 id"""
    code_executor = _get_code_executor(invocation_context)
    if code_executor is None or not code_executor.stateful:
        return None
    execution_id = code_executor_context.get_execution_id()
    if not execution_id:
        execution_id = invocation_context.session.id
        code_executor_context.set_execution_id(execution_id)
    return execution_id


async def post_process_code_execution_result(
    invocation_context: 'InvocationContext',
    execution: _ExecutionState,
    result: CodeExecutionResult,
) -> Event:
    """
    构建执行结果事件

    - stderr 非空时累加本次调用的错误计数，否则清零
    - 输出文件保存为 artifact，版本号记录到 artifact_delta
    """
    if invocation_context.artifact_service is None:
        raise ValueError("Artifact service is not initialized.")

    if result.stderr:
        execution.context.increment_error_count(invocation_context.invocation_id)
    else:
        execution.context.reset_error_count(invocation_context.invocation_id)

    actions = EventActions(state_delta={**execution.delta, **execution.context.get_state_delta()})

    for output_file in result.output_files:
        version = await invocation_context.artifact_service.save_artifact(
            app_name=invocation_context.app_name,
            user_id=invocation_context.user_id,
            session_id=invocation_context.session.id,
            filename=output_file.name,
            artifact=Part(inline_data=Blob(
                data=base64.b64decode(output_file.content),
                mime_type=output_file.mime_type,
            )),
        )
        actions.artifact_delta[output_file.name] = version

    logger.debug(
        f"[{invocation_context.agent.name}] Code executed "
        f"stderr={bool(result.stderr)} files={len(result.output_files)}"
    )
    return Event(
        invocation_id=invocation_context.invocation_id,
        author=invocation_context.agent.name,
        branch=invocation_context.branch,
        content=Content(role='model', parts=[build_code_execution_result_part(result)]),
        actions=actions,
    )
