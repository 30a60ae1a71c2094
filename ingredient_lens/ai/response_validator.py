"""
识别结果校验器

把识别服务返回的原始文本转换为 AnalysisResult：
1. 去掉 Markdown 代码块标记
2. 解析 JSON
3. 检查食材列表非空
4. 检查必填字段
"""
import json
import re
from typing import Any, Dict, List, Optional

from ingredient_lens.common import Logger
from .errors import ParseError, ValidationError
from .models import (
    AnalysisResult,
    Ingredient,
    Recipe,
    INGREDIENT_REQUIRED,
    RECIPE_REQUIRED,
)

# ```json / ```JSON / ``` 等标记（不区分大小写）
_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_fences(text: str) -> str:
    """去掉 Markdown 代码块标记并去除首尾空白"""
    return _FENCE_PATTERN.sub("", text or "").strip()


class ResponseValidator:
    """识别结果校验器

    职责：
    1. 清理、解析识别服务的原始文本
    2. 校验结构（食材非空）和必填字段
    3. 返回类型化的 AnalysisResult，不重排、不去重

    可选字段（nutrition / description）缺失或为 null 时都是 None；
    必填字段缺失抛出 ValidationError。
    """

    def __init__(self, log_dir: Optional[str] = "logs"):
        self.logger = Logger(log_dir)

    def validate(self, raw_text: str) -> AnalysisResult:
        """校验原始文本

        Args:
            raw_text: 识别服务返回的文本

        Returns:
            AnalysisResult

        Raises:
            ParseError: 文本为空或不是合法 JSON
            ValidationError: 食材为空或字段不符合约定
        """
        cleaned = strip_fences(raw_text)
        data = self._parse(cleaned)

        if not isinstance(data, dict):
            raise ValidationError(f"顶层应为对象，实际为 {type(data).__name__}", no_ingredients=True)

        raw_ingredients = data.get("ingredients")
        if not isinstance(raw_ingredients, list) or len(raw_ingredients) == 0:
            raise ValidationError("no ingredients recognized", no_ingredients=True)

        raw_recipes = data.get("recipes", [])
        if raw_recipes is None:
            raw_recipes = []
        if not isinstance(raw_recipes, list):
            raise ValidationError("recipes 应为数组")

        ingredients = [self._ingredient(item, index) for index, item in enumerate(raw_ingredients)]
        recipes = [self._recipe(item, index) for index, item in enumerate(raw_recipes)]

        self.logger.log("ai", "info",
                        f"识别结果校验通过: {len(ingredients)} 种食材, {len(recipes)} 个食谱")
        return AnalysisResult(ingredients=ingredients, recipes=recipes)

    # ==================== 解析 ====================

    def _parse(self, cleaned: str) -> Any:
        if not cleaned:
            raise ParseError("empty payload: 识别服务未返回内容", empty=True)

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            self.logger.log("ai", "warning", f"无法解析 JSON: {cleaned[:100]}")
            raise ParseError(f"unexpected token: {e.msg} (line {e.lineno} column {e.colno})") from e

    # ==================== 字段检查 ====================

    def _ingredient(self, item: Any, index: int) -> Ingredient:
        path = f"ingredients[{index}]"
        fields = self._require(item, INGREDIENT_REQUIRED, path)

        calories = fields["caloriesPer100g"]
        # bool 是 int 的子类，需要单独排除
        if isinstance(calories, bool) or not isinstance(calories, int) or calories < 0:
            raise ValidationError(f"{path}.caloriesPer100g 应为非负整数: {calories!r}")

        return Ingredient(
            name=self._string(fields["name"], f"{path}.name"),
            info=self._string(fields["info"], f"{path}.info"),
            calories_per_100g=calories,
            nutrition=self._optional_string(item.get("nutrition"), f"{path}.nutrition")
        )

    def _recipe(self, item: Any, index: int) -> Recipe:
        path = f"recipes[{index}]"
        fields = self._require(item, RECIPE_REQUIRED, path)

        return Recipe(
            id=self._string(fields["id"], f"{path}.id"),
            name=self._string(fields["name"], f"{path}.name"),
            difficulty=self._string(fields["difficulty"], f"{path}.difficulty"),
            prep_time=self._string(fields["prepTime"], f"{path}.prepTime"),
            all_ingredients=self._string_list(fields["allIngredients"], f"{path}.allIngredients"),
            instructions=self._string_list(fields["instructions"], f"{path}.instructions"),
            description=self._optional_string(item.get("description"), f"{path}.description")
        )

    @staticmethod
    def _require(item: Any, required: tuple, path: str) -> Dict[str, Any]:
        if not isinstance(item, dict):
            raise ValidationError(f"{path} 应为对象")

        missing = [key for key in required if item.get(key) is None]
        if missing:
            raise ValidationError(f"{path} 缺少必填字段: {', '.join(missing)}")

        return {key: item[key] for key in required}

    @staticmethod
    def _string(value: Any, path: str) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"{path} 应为字符串")
        return value

    @staticmethod
    def _optional_string(value: Any, path: str) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{path} 应为字符串")
        return value

    @staticmethod
    def _string_list(value: Any, path: str) -> List[str]:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"{path} 应为字符串数组")
        return list(value)
