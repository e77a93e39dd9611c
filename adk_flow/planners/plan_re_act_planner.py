"""PlanReActPlanner - 计划 / 推理 / 行动 / 最终答案 的结构化输出"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from typing_extensions import override

from ..types import Part
from .base_planner import BasePlanner

if TYPE_CHECKING:
    from ..agents.callback_context import CallbackContext
    from ..agents.readonly_context import ReadonlyContext
    from ..models.llm_request import LlmRequest

PLANNING_TAG = '/*PLANNING*/'
REPLANNING_TAG = '/*REPLANNING*/'
REASONING_TAG = '/*REASONING*/'
ACTION_TAG = '/*ACTION*/'
FINAL_ANSWER_TAG = '/*FINAL_ANSWER*/'


class PlanReActPlanner(BasePlanner):
    """
    Plan-ReAct 规划器

    要求模型先写计划，再交替使用工具和推理，最后给出最终答案。
    响应中带标签的计划/推理文本会被标记为 thought，不再作为正文展示；
    第一组函数调用之后的内容被丢弃。
    """

    @override
    def build_planning_instruction(
        self,
        readonly_context: 'ReadonlyContext',
        llm_request: 'LlmRequest',
    ) -> Optional[str]:
        return self._build_nl_planner_instruction()

    @override
    def process_planning_response(
        self,
        callback_context: 'CallbackContext',
        response_parts: list[Part],
    ) -> Optional[list[Part]]:
        if not response_parts:
            return None

        preserved_parts: list[Part] = []
        first_fc_part_index = -1
        for i, part in enumerate(response_parts):
            # 在第一组函数调用处停止
            if part.function_call:
                if not part.function_call.name:
                    continue
                preserved_parts.append(part)
                first_fc_part_index = i
                break
            self._handle_non_function_call_parts(part, preserved_parts)

        if first_fc_part_index >= 0:
            j = first_fc_part_index + 1
            while j < len(response_parts) and response_parts[j].function_call:
                preserved_parts.append(response_parts[j])
                j += 1

        return preserved_parts

    @staticmethod
    def _split_by_last_pattern(text: str, separator: str) -> tuple[str, str]:
        index = text.rfind(separator)
        if index == -1:
            return text, ''
        return text[:index + len(separator)], text[index + len(separator):]

    def _handle_non_function_call_parts(self, part: Part, preserved_parts: list[Part]) -> None:
        if part.text and FINAL_ANSWER_TAG in part.text:
            reasoning_text, final_answer_text = self._split_by_last_pattern(part.text, FINAL_ANSWER_TAG)
            if reasoning_text:
                preserved_parts.append(Part(text=reasoning_text, thought=True))
            if final_answer_text:
                preserved_parts.append(Part(text=final_answer_text))
            return

        text = part.text or ''
        if text.startswith((PLANNING_TAG, REASONING_TAG, ACTION_TAG, REPLANNING_TAG)):
            part = part.model_copy(update={'thought': True})
        preserved_parts.append(part)

    @staticmethod
    def _build_nl_planner_instruction() -> str:
        high_level_preamble = f"""
When answering the question, try to leverage the available tools to gather the information instead of your memorized knowledge.

Follow this process when answering the question: (1) first come up with a plan in natural language text format; (2) Then use tools to execute the plan and provide reasoning between tool usage to make a summary of current state and next step. Tool usage and reasoning should be interleaved with each other. (3) In the end, return one final answer.

Follow this format when answering the question: (1) The planning part should be under {PLANNING_TAG}. (2) The tool usage should be under {ACTION_TAG}, and the reasoning parts should be under {REASONING_TAG}. (3) The final answer part should be under {FINAL_ANSWER_TAG}.
"""

        planning_preamble = f"""
Below are the requirements for the planning:
The plan is made to answer the user query if following the plan. The plan is coherent and covers all aspects of information from user query, and only involves the tools that are accessible by the agent. The plan contains the decomposed steps as a numbered list where each step should use one or multiple available tools. By reading the plan, you can intuitively know which tools to trigger or what actions to take.
If the initial plan cannot be successfully executed, you should learn from previous execution results and revise your plan. The revised plan should be under {REPLANNING_TAG}. Then use tools to follow the new plan.
"""

        reasoning_preamble = """
Below are the requirements for the reasoning:
The reasoning makes a summary of the current trajectory based on the user query and tool outputs. Based on the tool outputs and plan, the reasoning also comes up with instructions to the next steps, making the trajectory closer to the final answer.
"""

        final_answer_preamble = """
Below are the requirements for the final answer:
The final answer should be precise and follow query formatting requirements. Some queries may not be answerable with the available tools and information. In those cases, inform the user why you cannot process their query and ask for more information.
"""

        tool_usage_preamble = """
Below are the requirements for tool usage:

- You can only use tools and parameters that are explicitly defined in the function declarations.
- You cannot use any parameters, fields, or capabilities that are not documented in the tool specifications.
- Tool usage should be clear, efficient, and directly relevant to the user query and reasoning steps.
- When using tools, reference them by their exact function names as provided in the context.
- Do not attempt to use external libraries, services, or capabilities beyond the provided tools.
- If the available tools are insufficient to fully answer a query, clearly explain the limitations.
"""

        user_input_preamble = """
VERY IMPORTANT instruction that you MUST follow in addition to the above instructions:

You should ask for clarification if you need more information to answer the question.
You should prefer using the information available in the context instead of repeated tool use.
"""

        return '\n\n'.join([
            high_level_preamble,
            planning_preamble,
            reasoning_preamble,
            final_answer_preamble,
            tool_usage_preamble,
            user_input_preamble,
        ])
