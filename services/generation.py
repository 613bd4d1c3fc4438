"""
Content Generation Service

Wraps the chat completion API as a structured-generation capability:
a prompt goes in, parsed JSON comes out, and every failure is raised
as one of the typed errors in services.errors.
"""

import logging
import textwrap
from dataclasses import dataclass, field
from typing import List, Optional

import openai
from openai import OpenAI

from constants import (
    MENU_SEPARATOR, HISTORY_PROMPT_LIMIT, MAX_LENGTHS, PROMPT_CATEGORY_LABELS
)
from utils.sanitizer import sanitize_name, sanitize_steps, sanitize_text
from .errors import (
    GenerationError, ModelUnavailable, PolicyRefused, Refusal,
    MalformedOutput, GenerationTimeout
)
from .parsing import extract_structured, split_menu

logger = logging.getLogger(__name__)


@dataclass
class PromptContext:
    """One generation request: what kind, the system instructions and the prompt."""
    kind: str
    instructions: str
    prompt: str
    payload: dict = field(default_factory=dict)


@dataclass
class IngredientLine:
    name: str
    amount: str = ''


@dataclass
class RecipeDraft:
    """Generated recipe before it is attached to a plan."""
    dish_name: str
    ingredients: List[IngredientLine]
    steps: List[str]
    cooking_time: str = ''


@dataclass
class DailyMenu:
    breakfast: str
    lunch: str
    dinner: str
    reason: str = ''

    def menu_for(self, slot):
        return getattr(self, slot)


@dataclass
class ConsolidatedIngredient:
    name: str
    combined_amount: str = ''
    sources: List[str] = field(default_factory=list)
    category: str = ''


def describe_inventory(items, today):
    """Render inventory lines for the plan prompt, soonest expiry first."""
    if not items:
        return '(no stock)'

    def sort_key(item):
        return (item.expiry is None, item.expiry or today)

    lines = []
    for item in sorted(items, key=sort_key):
        line = f"- {item.name} ({item.category}) x {item.count}"
        days = item.days_until_expiry(today)
        if days is not None:
            if days < 0:
                line += ' [expired]'
            elif days == 0:
                line += ' [expires today]'
            elif days == 1:
                line += ' [1 day left]'
            else:
                line += f' [{days} days left]'
        lines.append(line)
    return '\n'.join(lines)


def describe_history(history):
    """Render the most recent meals for the plan prompt (newest first)."""
    recent = list(history)[:HISTORY_PROMPT_LIMIT]
    if not recent:
        return '(no records)'
    return '\n'.join(
        f"{entry.date:%Y-%m-%d} [{entry.meal_slot}] {entry.menu_text}" for entry in recent
    )


def _is_policy_error(error):
    code = getattr(error, 'code', None) or ''
    return code == 'content_policy_violation' or 'content_filter' in str(error).lower()


class ContentGenerationClient:
    """
    Structured generation over the OpenAI chat completions API.

    Every call carries a finite timeout. Only generate() talks to the
    network; the typed helpers build prompts and validate the shape of
    what comes back.
    """

    def __init__(self, model='gpt-4o-mini', timeout=60, client=None):
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = OpenAI(timeout=self.timeout, max_retries=1)
            except openai.OpenAIError as e:
                raise ModelUnavailable(str(e))
        return self._client

    def generate(self, context):
        """
        Send one prompt and return the parsed JSON value.

        Raises:
            GenerationError subclass for every failure mode
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=0.2,
                timeout=self.timeout,
                messages=[
                    {'role': 'system', 'content': context.instructions},
                    {'role': 'user', 'content': context.prompt},
                ],
            )
        except GenerationError:
            raise
        except openai.APITimeoutError:
            raise GenerationTimeout()
        except openai.BadRequestError as e:
            if _is_policy_error(e):
                raise PolicyRefused()
            raise ModelUnavailable(str(e))
        except openai.OpenAIError as e:
            # Connection, auth, quota and server errors
            raise ModelUnavailable(str(e))

        if not getattr(response, 'choices', None):
            raise MalformedOutput()

        choice = response.choices[0]
        message = choice.message
        refusal = getattr(message, 'refusal', None)
        if refusal:
            raise Refusal(refusal)
        if getattr(choice, 'finish_reason', None) == 'content_filter':
            raise PolicyRefused()

        content = getattr(message, 'content', None)
        try:
            return extract_structured(content)
        except MalformedOutput:
            logger.warning("Unparseable %s response: %r", context.kind, (content or '')[:500])
            raise

    # ------------------------------------------------------------------
    # Meal plan
    # ------------------------------------------------------------------

    def generate_daily_menu(self, mode, inventory, history, today):
        """
        Ask for three menus and a rationale.

        morning: today's breakfast, lunch and dinner.
        evening: tonight's dinner plus tomorrow's breakfast and lunch.
        """
        if mode == 'evening':
            scope = "tonight's dinner and tomorrow's breakfast and lunch"
        else:
            scope = "today's breakfast, lunch and dinner"

        instructions = textwrap.dedent(f"""
            You are a home cooking expert. Using the fridge inventory and recent meal
            history, propose {scope}.
            - Always name concrete dishes; never vague words like "set meal".
            - Separate multiple dishes in one meal with "{MENU_SEPARATOR}".
            - Breakfast and lunch should be quick to prepare.
            - Dinner should balance a staple, main dish, side dish and soup.
            - Prefer ingredients that expire soon and avoid repeating recent meals.
            Answer with the JSON object only.
            """).strip()

        prompt = textwrap.dedent("""
            # Inventory
            {inventory}

            # Recent meals
            {history}

            # Answer format
            {{"breakfast": "...", "lunch": "...", "dinner": "...", "reason": "one or two sentences"}}
            """).strip().format(
            inventory=describe_inventory(inventory, today),
            history=describe_history(history),
        )

        data = self.generate(PromptContext(
            kind='meal_plan', instructions=instructions, prompt=prompt,
            payload={'mode': mode},
        ))
        if not isinstance(data, dict):
            raise MalformedOutput()

        menus = {}
        for slot in ('breakfast', 'lunch', 'dinner'):
            dishes = [sanitize_name(d, MAX_LENGTHS['dish_name'])
                      for d in split_menu(sanitize_text(data.get(slot)))]
            dishes = [d for d in dishes if d]
            if not dishes:
                raise MalformedOutput(f'The generated menu has no dishes for {slot}.')
            menus[slot] = MENU_SEPARATOR.join(dishes)[:MAX_LENGTHS['menu_text']]

        return DailyMenu(reason=sanitize_text(data.get('reason'), 1000), **menus)

    # ------------------------------------------------------------------
    # Recipes
    # ------------------------------------------------------------------

    def generate_recipe(self, dish_name, servings=2):
        """Ask for ingredients, steps and cooking time of one dish."""
        instructions = textwrap.dedent(f"""
            You are a professional cook. Write a recipe for {servings} servings.
            - List every ingredient including seasonings, with concrete amounts (300g, 2 tbsp, 1).
            - One sentence per step, in cooking order, with heat levels and times.
            Answer with the JSON object only.
            """).strip()

        prompt = textwrap.dedent("""
            Dish: {dish}

            # Answer format
            {{"dishName": "{dish}",
              "ingredients": [{{"name": "...", "amount": "..."}}],
              "steps": ["..."],
              "cookingTime": "about N minutes"}}
            """).strip().format(dish=dish_name)

        data = self.generate(PromptContext(
            kind='recipe', instructions=instructions, prompt=prompt,
            payload={'dish': dish_name, 'servings': servings},
        ))
        if not isinstance(data, dict) or not isinstance(data.get('ingredients'), list):
            raise MalformedOutput()

        ingredients = []
        for raw in data['ingredients']:
            if not isinstance(raw, dict):
                continue
            name = sanitize_name(raw.get('name'), MAX_LENGTHS['ingredient_name'])
            if not name:
                continue
            amount = sanitize_text(raw.get('amount'), MAX_LENGTHS['ingredient_amount'])
            ingredients.append(IngredientLine(name=name, amount=amount))

        # Keyed by the requested name so the tracker can match it
        return RecipeDraft(
            dish_name=dish_name,
            ingredients=ingredients,
            steps=sanitize_steps(data.get('steps'), MAX_LENGTHS['step']),
            cooking_time=sanitize_text(data.get('cookingTime'), MAX_LENGTHS['cooking_time']),
        )

    # ------------------------------------------------------------------
    # Ingredient consolidation
    # ------------------------------------------------------------------

    def consolidate_ingredients(self, ingredients, merge=False):
        """
        Consolidate (name, amount, dish) tuples for the shopping list.

        merge=True unifies near-duplicate names and sums compatible amounts;
        merge=False keeps names as they are and only assigns categories.
        """
        if not ingredients:
            return []

        categories = ', '.join(PROMPT_CATEGORY_LABELS)
        if merge:
            kind = 'merge'
            rules = textwrap.dedent("""
                Combine identical ingredients and ingredients that the same product can
                cover (e.g. 長ねぎ and ネギ). Sum amounts with the same unit; otherwise
                list them like "300g + 2 tbsp". List the dishes each item is used in.
                """).strip()
        else:
            kind = 'categorize'
            rules = 'Do not rename or combine anything. Keep names and amounts exactly as given.'

        instructions = (
            'You are a kitchen inventory assistant preparing a shopping list.\n'
            f'{rules}\n'
            f'Pick each category from: {categories}.\n'
            'Answer with the JSON array only.'
        )
        lines = '\n'.join(f"- {name} ({amount}) <- {dish}" for name, amount, dish in ingredients)
        prompt = (
            f"# Ingredients\n{lines}\n\n# Answer format\n"
            '[{"name": "...", "combinedAmount": "...", "sources": ["dish"], "category": "..."}]'
        )

        data = self.generate(PromptContext(
            kind=kind, instructions=instructions, prompt=prompt,
            payload={'ingredients': list(ingredients)},
        ))
        if isinstance(data, dict) and isinstance(data.get('items'), list):
            data = data['items']
        if not isinstance(data, list):
            raise MalformedOutput()

        results = []
        for raw in data:
            if not isinstance(raw, dict):
                continue
            name = sanitize_name(raw.get('name'), MAX_LENGTHS['ingredient_name'])
            if not name:
                continue
            sources = raw.get('sources') or []
            if isinstance(sources, str):
                sources = [sources]
            results.append(ConsolidatedIngredient(
                name=name,
                combined_amount=sanitize_text(raw.get('combinedAmount'), 200),
                sources=[sanitize_name(s) for s in sources if sanitize_name(s)],
                category=sanitize_text(raw.get('category'), MAX_LENGTHS['category']),
            ))
        return results


def build_client(config):
    """Create the generation client from Flask config."""
    return ContentGenerationClient(
        model=config.get('OPENAI_MODEL', 'gpt-4o-mini'),
        timeout=config.get('GENERATION_TIMEOUT', 60),
    )


def describe_error(error: Optional[BaseException]):
    """Human-readable message for any failure raised by generation."""
    if error is None:
        return ''
    return getattr(error, 'message', None) or str(error) or error.__class__.__name__
