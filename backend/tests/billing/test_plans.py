from credit_core.billing.config import (
    PLANS,
    get_credits_for_price_id,
    get_plan_by_id,
    get_plan_by_price_id,
    get_plan_name_for_price_id,
)


def test_plans_grant_monthly_credits():
    assert {plan.id: (plan.price, plan.credits) for plan in PLANS} == {
        "starter": (9, 50),
        "pro": (29, 200),
        "business": (99, 1000),
    }


def test_lookup_by_price_id():
    assert get_plan_by_price_id("price_pro_test").id == "pro"
    assert get_credits_for_price_id("price_business_test") == 1000
    assert get_plan_name_for_price_id("price_starter_test") == "starter"


def test_unknown_price_id():
    assert get_plan_by_price_id("price_unknown") is None
    assert get_plan_by_price_id(None) is None
    assert get_credits_for_price_id("price_unknown") == 0
    assert get_plan_name_for_price_id("price_unknown") == "free"


def test_lookup_by_id():
    assert get_plan_by_id("pro").popular is True
    assert get_plan_by_id("enterprise") is None
