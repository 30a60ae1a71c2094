"""
识别结果数据模型与请求约定

JSON 使用 camelCase 字段（与识别服务约定一致），Python 侧使用 snake_case。

可选字段（nutrition / description）为 None 时 to_dict() 不输出该键。
识别服务返回的显式 null 与缺失同等对待：{"nutrition": null} 规整为没有 nutrition 键，
其余字段逐一保持不变。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Ingredient:
    """识别出的食材"""
    name: str
    info: str
    calories_per_100g: int
    nutrition: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "info": self.info}
        if self.nutrition is not None:
            data["nutrition"] = self.nutrition
        data["caloriesPer100g"] = self.calories_per_100g
        return data


@dataclass(frozen=True)
class Recipe:
    """推荐食谱"""
    id: str
    name: str
    difficulty: str
    prep_time: str
    all_ingredients: List[str]
    instructions: List[str]
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "name": self.name}
        if self.description is not None:
            data["description"] = self.description
        data.update({
            "difficulty": self.difficulty,
            "prepTime": self.prep_time,
            "allIngredients": list(self.all_ingredients),
            "instructions": list(self.instructions),
        })
        return data


@dataclass(frozen=True)
class AnalysisResult:
    """校验通过的识别结果"""
    ingredients: List[Ingredient]
    recipes: List[Recipe] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredients": [item.to_dict() for item in self.ingredients],
            "recipes": [recipe.to_dict() for recipe in self.recipes],
        }


@dataclass(frozen=True)
class AnalysisRequest:
    """单次识别请求（每次拍摄创建一次，不可修改）"""
    image_bytes: bytes
    mime_type: str
    instruction_text: str
    response_schema: Dict[str, Any]


# ==================== 请求约定 ====================

SYSTEM_INSTRUCTION = """
你是一个极其专业的视觉识别 AI 营养师。

任务：
1. 识别图片中的食材（蔬菜、肉类、海鲜等）。
2. 提供核心营养价值和每100g预估热量。
3. 推荐3个极简健康食谱。

要求：
- 必须严格返回符合 JSON Schema 的数据。
- 不要包含任何 Markdown 标签（如 ```json）。
- 描述简练，语言为中文。
""".strip()

USER_PROMPT = "请分析这张照片中的食材并返回 JSON。"

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "ingredients": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "info": {"type": "STRING"},
                    "nutrition": {"type": "STRING"},
                    "caloriesPer100g": {"type": "INTEGER"}
                },
                "required": ["name", "info", "caloriesPer100g"]
            }
        },
        "recipes": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "name": {"type": "STRING"},
                    "description": {"type": "STRING"},
                    "difficulty": {"type": "STRING"},
                    "prepTime": {"type": "STRING"},
                    "allIngredients": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "instructions": {"type": "ARRAY", "items": {"type": "STRING"}}
                },
                "required": ["id", "name", "difficulty", "prepTime", "allIngredients", "instructions"]
            }
        }
    },
    "required": ["ingredients", "recipes"]
}

INGREDIENT_REQUIRED = ("name", "info", "caloriesPer100g")
RECIPE_REQUIRED = ("id", "name", "difficulty", "prepTime", "allIngredients", "instructions")
