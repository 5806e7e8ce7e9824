from newsletter.models.subscription import Subscription
