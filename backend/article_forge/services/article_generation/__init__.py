"""
长文生成模块

按职责拆分为多个子模块：
- extractor: 单次模型响应的解析
- prompts: 固定提示词
- provider / conversation: 模型提供方与单会话对话线程
- evaluator: 完成度评估
- sequencer: 编排状态机
- safety: 防护规则
- service: 对外入口（协调者）
"""

from .conversation import ConversationDriver
from .evaluator import CompletionEvaluator, Verdict
from .extractor import ParseKind, ParseResult, estimate_section_count, parse
from .provider import ConversationProvider, ConversationTurn, OpenAIConversationProvider, ProviderChunk
from .sequencer import Outcome, Phase, PromptSequencer, Section, SequencerResult, next_phase
from .service import ArticleGenerationService

__all__ = [
    # 解析
    "ParseKind",
    "ParseResult",
    "parse",
    "estimate_section_count",
    # 对话
    "ConversationDriver",
    "ConversationProvider",
    "ConversationTurn",
    "OpenAIConversationProvider",
    "ProviderChunk",
    # 评估
    "CompletionEvaluator",
    "Verdict",
    # 状态机
    "Phase",
    "Outcome",
    "PromptSequencer",
    "Section",
    "SequencerResult",
    "next_phase",
    # 核心服务
    "ArticleGenerationService",
]
