"""
Services Package

Business logic modules for the meal planner.
"""

from .errors import (
    GenerationError,
    ModelUnavailable,
    PolicyRefused,
    Refusal,
    MalformedOutput,
    GenerationTimeout,
    PersistenceFailure,
    FulfillmentError,
)

from .parsing import (
    split_menu,
    dishes_for_plans,
    dish_slot_map,
    extract_structured,
)

from .generation import (
    ContentGenerationClient,
    PromptContext,
    DailyMenu,
    RecipeDraft,
    IngredientLine,
    ConsolidatedIngredient,
    build_client,
)

from .settings import (
    AppSettings,
    load_settings,
    update_settings,
)

from .inventory import (
    inventory_snapshot,
    history_snapshot,
    expiring_items,
)

from .tracker import (
    GenerationState,
    RecipeGenerationTracker,
)

from .settlement import BatchSettlementDetector

from .fulfillment import (
    ShoppingFulfillmentEngine,
    clear_auto_added,
)

from .notifications import (
    Notifier,
    LoggingNotifier,
    WebhookNotifier,
    build_notifier,
)

from .orchestrator import (
    MealPlanOrchestrator,
    PlanSet,
    plans_in_window,
    needs_generation,
    window_slots,
)

from .scheduler import (
    ScheduledTriggerAdapter,
    TriggerTask,
    LocalScheduler,
    next_scheduled_time,
)

__all__ = [
    # Errors
    'GenerationError',
    'ModelUnavailable',
    'PolicyRefused',
    'Refusal',
    'MalformedOutput',
    'GenerationTimeout',
    'PersistenceFailure',
    'FulfillmentError',
    # Parsing
    'split_menu',
    'dishes_for_plans',
    'dish_slot_map',
    'extract_structured',
    # Generation
    'ContentGenerationClient',
    'PromptContext',
    'DailyMenu',
    'RecipeDraft',
    'IngredientLine',
    'ConsolidatedIngredient',
    'build_client',
    # Settings
    'AppSettings',
    'load_settings',
    'update_settings',
    # Inventory
    'inventory_snapshot',
    'history_snapshot',
    'expiring_items',
    # Tracking
    'GenerationState',
    'RecipeGenerationTracker',
    'BatchSettlementDetector',
    # Shopping
    'ShoppingFulfillmentEngine',
    'clear_auto_added',
    # Notifications
    'Notifier',
    'LoggingNotifier',
    'WebhookNotifier',
    'build_notifier',
    # Orchestration
    'MealPlanOrchestrator',
    'PlanSet',
    'plans_in_window',
    'needs_generation',
    'window_slots',
    'ScheduledTriggerAdapter',
    'TriggerTask',
    'LocalScheduler',
    'next_scheduled_time',
]
