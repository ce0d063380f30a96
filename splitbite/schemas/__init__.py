from splitbite.schemas.base import (  # noqa: F401
    DistributionMode,
    ErrorBody,
    ExtractedItem,
    ExtractedReceipt,
    ExtractionOutcome,
    ExtractionSource,
    FailedOutcome,
    FallbackOutcome,
    ImageLocator,
    ItemShare,
    LineItem,
    Person,
    PersonSavings,
    ProcessingStatus,
    RawTextLine,
    Receipt,
    ReceiptStats,
    RestaurantAggregate,
    SplitCalculation,
    StructuredOutcome,
    UnassignedItem,
)
